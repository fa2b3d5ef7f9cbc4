"""
Generation endpoints: image generation, prompt enhancement and refinement.

All three require a signed-in user; quota, moderation and upstream errors are
raised as VinciException subclasses and rendered by the exception handlers.
"""

import logging

from fastapi import APIRouter, Depends

from app.auth import get_current_principal
from app.dependencies import get_generation_service
from app.models.requests import (
    EnhancePromptBody,
    EnhancePromptResponse,
    ErrorResponse,
    GenerateImageBody,
    ImageGenerationResponse,
    RefinePromptBody,
    RefinePromptResponse,
    RefineQuestionResponse,
)
from app.services.generation import GenerationService
from src.types.generation import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generate", tags=["generate"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or content blocked"},
    401: {"model": ErrorResponse, "description": "Authentication required"},
    429: {"model": ErrorResponse, "description": "Tier quota or upstream quota exceeded"},
    500: {"model": ErrorResponse, "description": "Generation failed"},
}


@router.post(
    "/image",
    response_model=ImageGenerationResponse,
    responses={**_ERROR_RESPONSES, 504: {"model": ErrorResponse, "description": "Upstream timeout"}},
)
async def generate_image(
    body: GenerateImageBody,
    principal: Principal = Depends(get_current_principal),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Generate an image from a prompt and up to four input images.

    Consumes one image from the caller's quota on success only.
    """
    result = await service.generate_image(principal, body.to_domain())
    return ImageGenerationResponse(
        image=result.image,
        model=result.model,
        remaining_quota=result.remaining_quota,
        usage=result.usage,
    )


@router.post("/enhance", response_model=EnhancePromptResponse, responses=_ERROR_RESPONSES)
async def enhance_prompt(
    body: EnhancePromptBody,
    principal: Principal = Depends(get_current_principal),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Rewrite a prompt in one of the enhancement styles.

    Returns ``fallback: true`` when a basic suffix was applied instead of the
    model's rewrite.
    """
    result = await service.enhance_prompt(principal, body.to_domain())
    return EnhancePromptResponse(
        enhanced_prompt=result.enhanced_prompt,
        original_prompt=result.original_prompt,
        enhancement_style=result.style.value,
        fallback=result.fallback,
        message=result.message,
        remaining_quota=result.remaining_quota,
    )


@router.post("/refine", response_model=RefinePromptResponse, response_model_exclude_none=True, responses=_ERROR_RESPONSES)
async def refine_prompt(
    body: RefinePromptBody,
    principal: Principal = Depends(get_current_principal),
    service: GenerationService = Depends(get_generation_service),
):
    result = await service.refine_prompt(principal, body.to_domain())
    questions = None
    if result.questions is not None:
        questions = [RefineQuestionResponse.from_domain(q) for q in result.questions]
    return RefinePromptResponse(
        refined_prompt=result.refined_prompt,
        questions=questions,
        fallback=result.fallback,
        remaining_quota=result.remaining_quota,
    )
