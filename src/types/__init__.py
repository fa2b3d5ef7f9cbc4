"""
Type definitions for the VinciUI API.
"""

from .generation import (
    DEFAULT_IMAGE_MODEL,
    IMAGE_MODELS,
    EnhanceRequest,
    EnhancementResult,
    EnhancementStyle,
    GenerationAttempt,
    GenerationStatus,
    ImageGenerationRequest,
    ImageGenerationResult,
    InputImage,
    Principal,
    RefineMode,
    RefineRequest,
    RefineResult,
)
from .moderation import ModerationAction, ModerationResult, Severity
from .usage import (
    TIER_LIMITS,
    QuotaSnapshot,
    RateLimitResult,
    Tier,
    TierLimits,
    UsageAction,
    UsageRecord,
    UsageTotal,
    limits_for,
    parse_tier,
)

__all__ = [
    # Generation types
    "DEFAULT_IMAGE_MODEL",
    "IMAGE_MODELS",
    "EnhanceRequest",
    "EnhancementResult",
    "EnhancementStyle",
    "GenerationAttempt",
    "GenerationStatus",
    "ImageGenerationRequest",
    "ImageGenerationResult",
    "InputImage",
    "Principal",
    "RefineMode",
    "RefineRequest",
    "RefineResult",
    # Moderation types
    "ModerationAction",
    "ModerationResult",
    "Severity",
    # Usage types
    "TIER_LIMITS",
    "QuotaSnapshot",
    "RateLimitResult",
    "Tier",
    "TierLimits",
    "UsageAction",
    "UsageRecord",
    "UsageTotal",
    "limits_for",
    "parse_tier",
]
