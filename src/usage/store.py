"""
Usage store: per-user, per-UTC-day counters of quota-consuming actions.

Two backends share one interface:
- PostgresUsageStore: the `user_usage` table, incremented with a single
  INSERT ... ON CONFLICT statement so concurrent increments never lose counts.
- InMemoryUsageStore: used when DATABASE_URL is not configured (development
  and tests); every increment runs under an asyncio.Lock.

Read errors are not swallowed here. Callers decide how to degrade (the rate
limiter fails closed).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, Optional, Tuple

from src.db import Database
from src.types.usage import UsageAction, UsageRecord, UsageTotal
from src.utils.clock import Clock, utc_now, utc_today

logger = logging.getLogger(__name__)

_COUNTER_COLUMNS = {
    UsageAction.IMAGE: "images_generated",
    UsageAction.ENHANCEMENT: "prompts_enhanced",
}


def _column_for(action: UsageAction) -> str:
    try:
        return _COUNTER_COLUMNS[UsageAction(action)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown usage action: {action!r}") from None


class UsageStore(ABC):
    """Interface of the usage counters."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    def today(self) -> date:
        return utc_today(self._clock())

    @abstractmethod
    async def get_usage(self, user_id: str, day: Optional[date] = None) -> UsageRecord:
        """
        Get the counters of one user for one UTC day.

        Args:
            user_id: User identifier.
            day: UTC calendar day, today when omitted.

        Returns:
            The record, with zero counters if none exists yet.
        """

    @abstractmethod
    async def get_total_usage(self, user_id: str) -> UsageTotal:
        """Sum the counters of every day recorded for a user."""

    @abstractmethod
    async def increment_usage(self, user_id: str, action: UsageAction) -> UsageRecord:
        """
        Atomically add one to today's counter for ``action``.

        Creates today's record on first use.

        Returns:
            Today's record after the increment.
        """


class PostgresUsageStore(UsageStore):
    """Usage counters persisted in the `user_usage` table."""

    def __init__(self, db: Database, clock: Clock = utc_now):
        super().__init__(clock)
        self.db = db

    @staticmethod
    def _record_from_row(user_id: str, day: date, row) -> UsageRecord:
        if not row:
            return UsageRecord(user_id=user_id, day=day)
        return UsageRecord(
            user_id=row["user_id"],
            day=row["date"],
            images_generated=row["images_generated"],
            prompts_enhanced=row["prompts_enhanced"],
            last_updated=row["last_updated"],
        )

    async def get_usage(self, user_id: str, day: Optional[date] = None) -> UsageRecord:
        day = day or self.today()
        row = await self.db.fetchrow(
            """
            SELECT user_id, date, images_generated, prompts_enhanced, last_updated
            FROM user_usage
            WHERE user_id = $1 AND date = $2
            """,
            user_id,
            day,
        )
        return self._record_from_row(user_id, day, row)

    async def get_total_usage(self, user_id: str) -> UsageTotal:
        row = await self.db.fetchrow(
            """
            SELECT COALESCE(SUM(images_generated), 0) AS images_generated,
                   COALESCE(SUM(prompts_enhanced), 0) AS prompts_enhanced
            FROM user_usage
            WHERE user_id = $1
            """,
            user_id,
        )
        return UsageTotal(
            user_id=user_id,
            images_generated=int(row["images_generated"]) if row else 0,
            prompts_enhanced=int(row["prompts_enhanced"]) if row else 0,
        )

    async def increment_usage(self, user_id: str, action: UsageAction) -> UsageRecord:
        column = _column_for(action)
        day = self.today()
        # Column name comes from the fixed mapping above, never from input.
        row = await self.db.fetchrow(
            f"""
            INSERT INTO user_usage (user_id, date, {column}, last_updated)
            VALUES ($1, $2, 1, NOW())
            ON CONFLICT (user_id, date)
            DO UPDATE SET {column} = user_usage.{column} + 1,
                          last_updated = NOW()
            RETURNING user_id, date, images_generated, prompts_enhanced, last_updated
            """,
            user_id,
            day,
        )
        logger.info(f"Usage incremented for user {user_id[:8]}...: {column}")
        return self._record_from_row(user_id, day, row)


class InMemoryUsageStore(UsageStore):
    """Process-local usage counters."""

    def __init__(self, clock: Clock = utc_now):
        super().__init__(clock)
        self._records: Dict[Tuple[str, date], UsageRecord] = {}
        self._lock = asyncio.Lock()

    async def get_usage(self, user_id: str, day: Optional[date] = None) -> UsageRecord:
        day = day or self.today()
        record = self._records.get((user_id, day))
        if record is None:
            return UsageRecord(user_id=user_id, day=day)
        return record.model_copy()

    async def get_total_usage(self, user_id: str) -> UsageTotal:
        total = UsageTotal(user_id=user_id)
        for (owner, _), record in self._records.items():
            if owner == user_id:
                total.images_generated += record.images_generated
                total.prompts_enhanced += record.prompts_enhanced
        return total

    async def increment_usage(self, user_id: str, action: UsageAction) -> UsageRecord:
        column = _column_for(action)
        async with self._lock:
            now = self._clock()
            key = (user_id, utc_today(now))
            record = self._records.get(key)
            if record is None:
                record = UsageRecord(user_id=user_id, day=key[1])
                self._records[key] = record
            setattr(record, column, getattr(record, column) + 1)
            record.last_updated = now
            snapshot = record.model_copy()
        logger.info(f"Usage incremented for user {user_id[:8]}...: {column}")
        return snapshot

    async def set_usage(self, user_id: str, day: date, images: int = 0, enhancements: int = 0) -> None:
        """Seed counters directly (development fixtures and tests)."""
        async with self._lock:
            self._records[(user_id, day)] = UsageRecord(
                user_id=user_id,
                day=day,
                images_generated=images,
                prompts_enhanced=enhancements,
                last_updated=self._clock(),
            )
