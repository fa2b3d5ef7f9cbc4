"""
Pydantic models for generation requests, attempts and results.

These are the domain-level shapes used by the generation service. The HTTP
layer has its own camelCase request/response models in app/models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .usage import QuotaSnapshot, Tier


DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
LEGACY_IMAGE_MODEL = "gemini-2.0-flash-preview-image-generation"

# Image models a client may request; anything else falls back to the default.
IMAGE_MODELS: Tuple[str, ...] = (DEFAULT_IMAGE_MODEL, LEGACY_IMAGE_MODEL)

# Models that only accept a single input image.
SINGLE_IMAGE_MODELS = frozenset({LEGACY_IMAGE_MODEL})

ALLOWED_IMAGE_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})
MAX_IMAGE_UPLOAD_BYTES = 10 * 1024 * 1024


def resolve_image_model(model: Optional[str]) -> str:
    """Return the requested model if it is allow-listed, else the default."""
    if model in IMAGE_MODELS:
        return model
    return DEFAULT_IMAGE_MODEL


class Principal(BaseModel):
    """The authenticated caller, resolved fresh from the user table per request."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    tier: Tier = Tier.FREE


class GenerationStatus(str, Enum):
    """Lifecycle state of a generation attempt."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        return self != GenerationStatus.PENDING


class GenerationAttempt(BaseModel):
    """One row of the generation log."""

    id: str
    user_id: str
    prompt: str
    model_used: str
    status: GenerationStatus
    detail: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None


class ModerationLogEntry(BaseModel):
    """One row of the moderation log."""

    user_id: str
    content: str
    content_type: str
    flags: List[str] = Field(default_factory=list)
    action: str
    created_at: datetime


class InputImage(BaseModel):
    """A base64 encoded input image."""

    data: str = Field(..., description="Base64 payload or data URI")
    mime_type: str = Field(default="image/png")


class EnhancementStyle(str, Enum):
    """Prompt enhancement styles."""
    DETAILED = "detailed"
    ARTISTIC = "artistic"
    PHOTOREALISTIC = "photorealistic"
    CINEMATIC = "cinematic"

    @classmethod
    def parse(cls, value: Optional[str]) -> "EnhancementStyle":
        """Unknown or missing styles resolve to DETAILED."""
        try:
            return cls(value)
        except ValueError:
            return cls.DETAILED


class RefineMode(str, Enum):
    """Prompt refinement modes."""
    AUTO = "auto"
    QUESTIONS = "questions"
    APPLY = "apply"


class ImageGenerationRequest(BaseModel):
    prompt: str
    images: List[InputImage] = Field(default_factory=list)
    model: Optional[str] = None
    seed: Optional[int] = None


class ImageGenerationResult(BaseModel):
    image: str = Field(..., description="data:image/png;base64 URI")
    model: str
    remaining_quota: int
    usage: Optional[QuotaSnapshot] = None


class EnhanceRequest(BaseModel):
    prompt: str
    style: EnhancementStyle = EnhancementStyle.DETAILED
    reference_image: Optional[InputImage] = None


class EnhancementResult(BaseModel):
    enhanced_prompt: str
    original_prompt: str
    style: EnhancementStyle
    fallback: bool = False
    message: Optional[str] = None
    remaining_quota: int


class RefineAnswer(BaseModel):
    question: str
    answer: str = ""


class RefineQuestion(BaseModel):
    question: str
    options: List[str] = Field(default_factory=list)
    answer: str = ""


class RefineRequest(BaseModel):
    prompt: str
    mode: str = Field(..., description="One of the RefineMode values; checked by the service")
    reference_images: List[InputImage] = Field(default_factory=list)
    answers: List[RefineAnswer] = Field(default_factory=list)


class RefineResult(BaseModel):
    refined_prompt: Optional[str] = None
    questions: Optional[List[RefineQuestion]] = None
    fallback: bool = False
    remaining_quota: Optional[int] = None
