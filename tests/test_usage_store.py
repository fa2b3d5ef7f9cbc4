"""
Tests for the usage stores.

Covers day keys, lifetime totals, concurrent increments in memory and the
statements issued against Postgres.
"""

import asyncio
import os
import sys
import unittest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from helpers import FixedClock
from src.types.usage import UsageAction
from src.usage.store import InMemoryUsageStore, PostgresUsageStore

USER = "user-0001-aaaa"


class TestInMemoryUsageStore(unittest.IsolatedAsyncioTestCase):
    """Process-local counters."""

    def setUp(self):
        self.clock = FixedClock()
        self.store = InMemoryUsageStore(self.clock)

    async def test_missing_record_reads_as_zero(self):
        record = await self.store.get_usage(USER)
        self.assertEqual(record.day, date(2026, 3, 10))
        self.assertEqual(record.images_generated, 0)
        self.assertEqual(record.prompts_enhanced, 0)

    async def test_increment_creates_record(self):
        record = await self.store.increment_usage(USER, UsageAction.IMAGE)
        self.assertEqual(record.images_generated, 1)
        self.assertEqual(record.prompts_enhanced, 0)
        self.assertEqual(record.last_updated, self.clock.now)

    async def test_increment_enhancement(self):
        await self.store.increment_usage(USER, UsageAction.ENHANCEMENT)
        await self.store.increment_usage(USER, "enhancement")
        record = await self.store.get_usage(USER)
        self.assertEqual(record.prompts_enhanced, 2)

    async def test_concurrent_increments_are_not_lost(self):
        await asyncio.gather(*[
            self.store.increment_usage(USER, UsageAction.IMAGE) for _ in range(50)
        ])
        record = await self.store.get_usage(USER)
        self.assertEqual(record.images_generated, 50)

    async def test_new_utc_day_starts_from_zero(self):
        await self.store.increment_usage(USER, UsageAction.IMAGE)
        self.clock.now = datetime(2026, 3, 11, 0, 0, 1, tzinfo=timezone.utc)
        record = await self.store.get_usage(USER)
        self.assertEqual(record.images_generated, 0)

        yesterday = await self.store.get_usage(USER, date(2026, 3, 10))
        self.assertEqual(yesterday.images_generated, 1)

    async def test_total_usage_sums_all_days(self):
        await self.store.set_usage(USER, date(2026, 1, 1), images=1, enhancements=2)
        await self.store.increment_usage(USER, UsageAction.IMAGE)
        await self.store.increment_usage("someone-else", UsageAction.IMAGE)

        total = await self.store.get_total_usage(USER)
        self.assertEqual(total.images_generated, 2)
        self.assertEqual(total.prompts_enhanced, 2)

    async def test_returned_records_are_copies(self):
        record = await self.store.increment_usage(USER, UsageAction.IMAGE)
        record.images_generated = 99
        fresh = await self.store.get_usage(USER)
        self.assertEqual(fresh.images_generated, 1)

    async def test_unknown_action_raises(self):
        with self.assertRaises(ValueError):
            await self.store.increment_usage(USER, "video")


class TestPostgresUsageStore(unittest.IsolatedAsyncioTestCase):
    """SQL issued by the Postgres store."""

    def setUp(self):
        self.clock = FixedClock()
        self.db = MagicMock()
        self.db.fetchrow = AsyncMock()
        self.store = PostgresUsageStore(self.db, self.clock)

    async def test_increment_is_single_upsert(self):
        self.db.fetchrow.return_value = {
            "user_id": USER,
            "date": date(2026, 3, 10),
            "images_generated": 3,
            "prompts_enhanced": 0,
            "last_updated": self.clock.now,
        }

        record = await self.store.increment_usage(USER, UsageAction.IMAGE)

        self.assertEqual(record.images_generated, 3)
        query, user_id, day = self.db.fetchrow.call_args.args
        self.assertIn("ON CONFLICT (user_id, date)", query)
        self.assertIn("images_generated = user_usage.images_generated + 1", query)
        self.assertEqual(user_id, USER)
        self.assertEqual(day, date(2026, 3, 10))

    async def test_enhancement_increment_targets_its_column(self):
        self.db.fetchrow.return_value = None
        await self.store.increment_usage(USER, UsageAction.ENHANCEMENT)
        query = self.db.fetchrow.call_args.args[0]
        self.assertIn("prompts_enhanced = user_usage.prompts_enhanced + 1", query)

    async def test_get_usage_without_row(self):
        self.db.fetchrow.return_value = None
        record = await self.store.get_usage(USER)
        self.assertEqual(record.images_generated, 0)
        self.assertEqual(record.day, date(2026, 3, 10))

    async def test_total_usage(self):
        self.db.fetchrow.return_value = {"images_generated": 4, "prompts_enhanced": 7}
        total = await self.store.get_total_usage(USER)
        self.assertEqual(total.images_generated, 4)
        self.assertEqual(total.prompts_enhanced, 7)

    async def test_read_errors_propagate(self):
        self.db.fetchrow.side_effect = RuntimeError("Database is not connected")
        with self.assertRaises(RuntimeError):
            await self.store.get_usage(USER)


if __name__ == "__main__":
    unittest.main()
