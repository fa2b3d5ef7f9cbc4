"""
Content moderation for VinciUI prompts and uploads.
"""

from .ai import ai_moderate
from .engine import ContentModerator, classify, validate_image_upload

__all__ = [
    "ContentModerator",
    "ai_moderate",
    "classify",
    "validate_image_upload",
]
