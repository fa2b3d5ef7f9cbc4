"""
Tier-based rate limiting for image generation and prompt enhancement.

The limiter never raises. Any failure while reading usage denies the request,
and unknown actions are denied with a generic message.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Optional

from src.generation.log import GenerationLog
from src.types.usage import (
    QuotaSnapshot,
    RateLimitResult,
    Tier,
    TierLimits,
    UsageAction,
    limits_for,
    parse_tier,
)
from src.users.store import UserStore
from src.utils.clock import Clock, as_utc, next_utc_midnight, utc_now

from .store import UsageStore

logger = logging.getLogger(__name__)

INVALID_ACTION_MESSAGE = "Invalid action type"
CHECK_FAILED_MESSAGE = "Rate limit check failed"


class RateLimiter:
    """
    Decide whether a user may perform a quota-consuming action right now.

    Args:
        usage_store: Daily usage counters.
        generation_log: Source of the last successful generation time.
        user_store: Used to resolve the tier when the caller does not pass one.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        usage_store: UsageStore,
        generation_log: GenerationLog,
        user_store: Optional[UserStore] = None,
        clock: Clock = utc_now,
    ):
        self.usage_store = usage_store
        self.generation_log = generation_log
        self.user_store = user_store
        self._clock = clock

    async def _resolve_tier(self, user_id: str, tier: Any) -> Tier:
        if tier is not None:
            return parse_tier(tier)
        if self.user_store is None:
            return Tier.FREE
        try:
            return await self.user_store.get_tier(user_id)
        except Exception as e:
            logger.warning(f"Tier lookup failed for user {user_id[:8]}..., using free tier: {e}")
            return Tier.FREE

    async def check_limit(self, user_id: str, action: Any, tier: Any = None) -> RateLimitResult:
        """
        Check whether ``action`` is allowed for ``user_id``.

        Args:
            user_id: User identifier.
            action: "image" or "enhancement".
            tier: The caller's tier if already known; looked up otherwise.

        Returns:
            RateLimitResult. On allow, ``remaining_quota`` already accounts for
            the action being checked.
        """
        try:
            action = UsageAction(action)
        except ValueError:
            return RateLimitResult(allowed=False, message=INVALID_ACTION_MESSAGE)

        resolved = await self._resolve_tier(user_id, tier)
        limits = limits_for(resolved)

        try:
            if action == UsageAction.IMAGE:
                return await self._check_image(user_id, limits)
            return await self._check_enhancement(user_id, limits)
        except Exception as e:
            logger.error(f"Rate limit check failed for user {user_id[:8]}...: {e}")
            return RateLimitResult(allowed=False, message=CHECK_FAILED_MESSAGE)

    async def _images_used(self, user_id: str, limits: TierLimits) -> int:
        if limits.image_cap_is_lifetime:
            total = await self.usage_store.get_total_usage(user_id)
            return total.images_generated
        record = await self.usage_store.get_usage(user_id)
        return record.images_generated

    async def _check_image(self, user_id: str, limits: TierLimits) -> RateLimitResult:
        now = self._clock()
        cap = limits.images_per_period
        used = await self._images_used(user_id, limits)

        if used >= cap:
            if limits.image_cap_is_lifetime:
                message = (
                    f"{limits.tier.value.capitalize()} tier limit reached "
                    f"({limits.image_limit_label} images). Upgrade for more generations."
                )
                reset_time = None
            else:
                message = f"Daily image generation limit reached ({cap}). Resets at midnight UTC."
                reset_time = next_utc_midnight(now)
            return RateLimitResult(
                allowed=False,
                message=message,
                reset_time=reset_time,
                remaining_quota=0,
            )

        if limits.cooldown_seconds > 0:
            last_success = await self.generation_log.get_last_successful_generation_time(user_id)
            if last_success is not None:
                cooldown_ends = as_utc(last_success) + timedelta(seconds=limits.cooldown_seconds)
                if now < cooldown_ends:
                    wait_minutes = math.ceil((cooldown_ends - now).total_seconds() / 60)
                    return RateLimitResult(
                        allowed=False,
                        message=(
                            f"Please wait {wait_minutes} minutes before next generation "
                            f"({limits.tier.value} tier cooldown)."
                        ),
                        reset_time=cooldown_ends,
                        remaining_quota=cap - used,
                    )

        return RateLimitResult(
            allowed=True,
            reset_time=None if limits.image_cap_is_lifetime else next_utc_midnight(now),
            remaining_quota=cap - used - 1,
        )

    async def _check_enhancement(self, user_id: str, limits: TierLimits) -> RateLimitResult:
        now = self._clock()
        cap = limits.enhancements_per_period
        record = await self.usage_store.get_usage(user_id)
        used = record.prompts_enhanced

        if used >= cap:
            return RateLimitResult(
                allowed=False,
                message=f"Daily prompt enhancement limit reached ({cap}). Resets at midnight UTC.",
                reset_time=next_utc_midnight(now),
                remaining_quota=0,
            )

        return RateLimitResult(
            allowed=True,
            reset_time=next_utc_midnight(now),
            remaining_quota=cap - used - 1,
        )

    async def remaining(self, user_id: str, action: UsageAction, tier: Any) -> int:
        """Fresh remaining count for ``action``, never negative."""
        limits = limits_for(tier)
        if UsageAction(action) == UsageAction.IMAGE:
            used = await self._images_used(user_id, limits)
            return max(limits.images_per_period - used, 0)
        record = await self.usage_store.get_usage(user_id)
        return max(limits.enhancements_per_period - record.prompts_enhanced, 0)

    async def usage_snapshot(self, user_id: str, tier: Any) -> QuotaSnapshot:
        """
        Read current usage and limits for display.

        Read errors propagate; callers that only decorate a response with the
        snapshot should handle them.
        """
        limits = limits_for(tier)
        images_used = await self._images_used(user_id, limits)
        today = await self.usage_store.get_usage(user_id)
        now: datetime = self._clock()
        return QuotaSnapshot(
            tier=limits.tier,
            images_used=images_used,
            images_limit=limits.images_per_period,
            images_remaining=max(limits.images_per_period - images_used, 0),
            image_limit_is_lifetime=limits.image_cap_is_lifetime,
            enhancements_used=today.prompts_enhanced,
            enhancements_limit=limits.enhancements_per_period,
            enhancements_remaining=max(limits.enhancements_per_period - today.prompts_enhanced, 0),
            reset_time=next_utc_midnight(now),
        )
