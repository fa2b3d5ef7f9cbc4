"""Pydantic models for the VinciUI API."""

from .requests import (
    EnhancePromptBody,
    EnhancePromptResponse,
    ErrorResponse,
    GenerateImageBody,
    ImageGenerationResponse,
    MeResponse,
    RefinePromptBody,
    RefinePromptResponse,
    UserResponse,
)

__all__ = [
    "EnhancePromptBody",
    "EnhancePromptResponse",
    "ErrorResponse",
    "GenerateImageBody",
    "ImageGenerationResponse",
    "MeResponse",
    "RefinePromptBody",
    "RefinePromptResponse",
    "UserResponse",
]
