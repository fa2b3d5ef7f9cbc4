"""
Pydantic models for content moderation results.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field, model_validator


class ModerationAction(str, Enum):
    """What happens to moderated content."""
    ALLOWED = "allowed"
    FLAGGED = "flagged"
    BLOCKED = "blocked"


class Severity(str, Enum):
    """Severity of the worst finding in a piece of content."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModerationResult(BaseModel):
    """
    Verdict of the moderation engine.

    ``allowed`` is always the negation of ``action == blocked``; the
    validator rejects any other combination.
    """

    allowed: bool
    flags: List[str] = Field(
        default_factory=list,
        description="Ordered list of findings, e.g. 'banned_keyword:gun'",
    )
    action: ModerationAction
    severity: Severity = Severity.LOW
    message: str = ""

    @model_validator(mode="after")
    def _check_allowed_matches_action(self) -> "ModerationResult":
        if self.allowed != (self.action != ModerationAction.BLOCKED):
            raise ValueError("allowed must be False exactly when action is 'blocked'")
        return self

    @property
    def is_blocked(self) -> bool:
        return self.action == ModerationAction.BLOCKED
