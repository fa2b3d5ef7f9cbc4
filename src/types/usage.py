"""
Pydantic models for usage quota tracking and account tiers.

This module defines:
- The closed set of account tiers and their static limits
- The per-day usage record and lifetime totals
- Rate-limit decisions and quota snapshots returned to callers
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Tier(str, Enum):
    """Account tier of a principal."""
    FREE = "free"
    PREMIUM = "premium"
    TESTER = "tester"
    DEVELOPER = "developer"


class UsageAction(str, Enum):
    """Quota-consuming actions."""
    IMAGE = "image"
    ENHANCEMENT = "enhancement"


class TierLimits(BaseModel):
    """Static limits of one tier."""

    model_config = ConfigDict(frozen=True)

    tier: Tier
    images_per_period: int = Field(
        ...,
        ge=0,
        description="Image cap, per UTC day or lifetime when image_cap_is_lifetime is set",
    )
    enhancements_per_period: int = Field(
        ...,
        ge=0,
        description="Prompt enhancements allowed per UTC day",
    )
    image_cap_is_lifetime: bool = Field(
        default=False,
        description="Whether the image cap counts all usage ever instead of today",
    )
    cooldown_seconds: int = Field(
        default=0,
        ge=0,
        description="Minimum seconds between successful image generations",
    )
    max_prompt_length: int = Field(
        ...,
        ge=1,
        description="Maximum prompt length in characters",
    )
    bypass_moderation: bool = Field(
        default=False,
        description="Skip content moderation entirely",
    )

    @property
    def image_limit_label(self) -> str:
        """Human-readable image cap, e.g. '2 total' or '100/day'."""
        if self.image_cap_is_lifetime:
            return f"{self.images_per_period} total"
        return f"{self.images_per_period}/day"


TIER_LIMITS: Dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        tier=Tier.FREE,
        images_per_period=2,
        enhancements_per_period=5,
        image_cap_is_lifetime=True,
        cooldown_seconds=30 * 60,
        max_prompt_length=300,
    ),
    Tier.PREMIUM: TierLimits(
        tier=Tier.PREMIUM,
        images_per_period=100,
        enhancements_per_period=200,
        max_prompt_length=1000,
    ),
    Tier.TESTER: TierLimits(
        tier=Tier.TESTER,
        images_per_period=50,
        enhancements_per_period=100,
        max_prompt_length=1000,
    ),
    Tier.DEVELOPER: TierLimits(
        tier=Tier.DEVELOPER,
        images_per_period=1000,
        enhancements_per_period=1000,
        max_prompt_length=2000,
        bypass_moderation=True,
    ),
}


def parse_tier(value: Any) -> Tier:
    """
    Normalise a stored tier value.

    Anything that is not exactly one of the known tier names resolves to
    the free tier.
    """
    if isinstance(value, Tier):
        return value
    if isinstance(value, str):
        try:
            return Tier(value)
        except ValueError:
            pass
    return Tier.FREE


def limits_for(tier: Any) -> TierLimits:
    """
    Get the limits of a tier.

    Args:
        tier: A Tier, a stored tier string, or None.

    Returns:
        The tier's limits; free-tier limits for unknown values.
    """
    return TIER_LIMITS[parse_tier(tier)]


class UsageRecord(BaseModel):
    """Counters of one user for one UTC calendar day."""

    user_id: str
    day: date
    images_generated: int = Field(default=0, ge=0)
    prompts_enhanced: int = Field(default=0, ge=0)
    last_updated: Optional[datetime] = None

    def count_for(self, action: UsageAction) -> int:
        if action == UsageAction.IMAGE:
            return self.images_generated
        return self.prompts_enhanced


class UsageTotal(BaseModel):
    """All-time counters of one user."""

    user_id: str
    images_generated: int = Field(default=0, ge=0)
    prompts_enhanced: int = Field(default=0, ge=0)


class RateLimitResult(BaseModel):
    """Outcome of a rate-limit check."""

    allowed: bool
    message: Optional[str] = None
    reset_time: Optional[datetime] = Field(
        default=None,
        description="When the denied action becomes possible again",
    )
    remaining_quota: Optional[int] = Field(
        default=None,
        description="Actions left after the checked one would be performed",
    )


class QuotaSnapshot(BaseModel):
    """Fresh view of a user's usage and limits, returned to the UI."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tier: Tier
    images_used: int
    images_limit: int
    images_remaining: int
    image_limit_is_lifetime: bool
    enhancements_used: int
    enhancements_limit: int
    enhancements_remaining: int
    reset_time: datetime
