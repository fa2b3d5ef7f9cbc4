"""
Usage tracking and tier limits for VinciUI.

This package provides the per-day usage counters and the rate limiter that
enforces tier caps and cooldowns.
"""

from .rate_limiter import RateLimiter
from .store import InMemoryUsageStore, PostgresUsageStore, UsageStore

__all__ = [
    "RateLimiter",
    "UsageStore",
    "PostgresUsageStore",
    "InMemoryUsageStore",
]
