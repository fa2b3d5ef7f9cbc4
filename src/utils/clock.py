"""UTC day helpers shared by the usage store and the rate limiter."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC tzinfo to naive datetimes, convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_today(now: datetime) -> date:
    return as_utc(now).date()


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the UTC day after ``now``; daily counters reset here."""
    tomorrow = utc_today(now) + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=timezone.utc)
