"""
Pydantic request and response models for the HTTP API.

Field names are snake_case in Python and camelCase on the wire, matching the
React client.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.types.generation import (
    EnhanceRequest,
    EnhancementStyle,
    ImageGenerationRequest,
    InputImage,
    RefineAnswer,
    RefineQuestion,
    RefineRequest,
)
from src.types.usage import QuotaSnapshot

MAX_INPUT_IMAGES = 4


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _image(data: str) -> InputImage:
    return InputImage(data=data)


# =============================================================================
# Requests
# =============================================================================


class GenerateImageBody(CamelModel):
    """POST /api/generate/image"""

    prompt: str = ""
    images: List[str] = Field(
        default_factory=list,
        max_length=MAX_INPUT_IMAGES,
        description="Base64 payloads or data URIs of input images",
    )
    image_base64: Optional[str] = Field(
        default=None,
        description="Single input image (older clients)",
    )
    model: Optional[str] = None
    seed: Optional[int] = Field(default=None, ge=0)

    def to_domain(self) -> ImageGenerationRequest:
        images = list(self.images)
        if not images and self.image_base64:
            images = [self.image_base64]
        return ImageGenerationRequest(
            prompt=self.prompt,
            images=[_image(data) for data in images],
            model=self.model,
            seed=self.seed,
        )


class EnhancePromptBody(CamelModel):
    """POST /api/generate/enhance"""

    prompt: str = ""
    enhancement_style: Optional[str] = Field(default=None, description="detailed, artistic, photorealistic or cinematic")
    reference_image: Optional[str] = None

    def to_domain(self) -> EnhanceRequest:
        return EnhanceRequest(
            prompt=self.prompt,
            style=EnhancementStyle.parse(self.enhancement_style),
            reference_image=_image(self.reference_image) if self.reference_image else None,
        )


class RefineAnswerBody(CamelModel):
    question: str
    answer: str = ""


class RefinePromptBody(CamelModel):
    """POST /api/generate/refine"""

    prompt: str = ""
    mode: str = Field(default="auto", description="auto, questions or apply")
    reference_images: List[str] = Field(default_factory=list, max_length=MAX_INPUT_IMAGES)
    answers: List[RefineAnswerBody] = Field(default_factory=list)

    def to_domain(self) -> RefineRequest:
        return RefineRequest(
            prompt=self.prompt,
            mode=self.mode,
            reference_images=[_image(data) for data in self.reference_images],
            answers=[RefineAnswer(question=a.question, answer=a.answer) for a in self.answers],
        )


# =============================================================================
# Responses
# =============================================================================


class ImageGenerationResponse(CamelModel):
    success: bool = True
    image: str
    model: str
    remaining_quota: int
    usage: Optional[QuotaSnapshot] = None


class EnhancePromptResponse(CamelModel):
    success: bool = True
    enhanced_prompt: str
    original_prompt: str
    enhancement_style: str
    fallback: bool = False
    message: Optional[str] = None
    remaining_quota: int


class RefineQuestionResponse(CamelModel):
    question: str
    options: List[str] = Field(default_factory=list)
    answer: str = ""

    @classmethod
    def from_domain(cls, question: RefineQuestion) -> "RefineQuestionResponse":
        return cls(question=question.question, options=question.options, answer=question.answer)


class RefinePromptResponse(CamelModel):
    success: bool = True
    refined_prompt: Optional[str] = None
    questions: Optional[List[RefineQuestionResponse]] = None
    fallback: bool = False
    remaining_quota: Optional[int] = None


class UserResponse(CamelModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    tier: str


class MeResponse(CamelModel):
    user: UserResponse
    usage: Optional[QuotaSnapshot] = None


class ErrorResponse(BaseModel):
    """Uniform error body produced by the exception handlers."""

    success: bool = False
    error: str
    error_code: str
    message: Optional[str] = Field(default=None, description="Quota denials only")
    remaining_quota: Optional[int] = Field(default=None, alias="remainingQuota")
    reset_time: Optional[datetime] = Field(default=None, alias="resetTime")
    details: Optional[dict] = None
