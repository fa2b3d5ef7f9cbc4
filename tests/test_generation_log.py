"""
Tests for the generation log and AttemptTracker.
"""

import asyncio
import os
import sys
import unittest
from datetime import timedelta
from unittest.mock import AsyncMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from helpers import FixedClock
from src.generation.log import AttemptTracker, InMemoryGenerationLog
from src.types.generation import GenerationStatus

USER = "user-0001-aaaa"
MODEL = "gemini-2.5-flash-image-preview"


class TestGenerationLog(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.clock = FixedClock()
        self.log = InMemoryGenerationLog(self.clock)

    async def test_log_and_update_attempt(self):
        attempt_id = await self.log.log_attempt(USER, "a cat", MODEL, GenerationStatus.PENDING)
        self.clock.advance(seconds=5)
        await self.log.update_attempt(attempt_id, GenerationStatus.SUCCESS, {"seed": 3})

        attempt = self.log.attempts[attempt_id]
        self.assertEqual(attempt.status, GenerationStatus.SUCCESS)
        self.assertEqual(attempt.detail, {"seed": 3})
        self.assertEqual(attempt.updated_at - attempt.created_at, timedelta(seconds=5))

    async def test_write_failure_returns_none(self):
        self.log._insert_attempt = AsyncMock(side_effect=RuntimeError("db down"))
        attempt_id = await self.log.log_attempt(USER, "a cat", MODEL, GenerationStatus.BLOCKED)
        self.assertIsNone(attempt_id)

    async def test_update_without_id_is_noop(self):
        await self.log.update_attempt(None, GenerationStatus.FAILED)
        self.assertEqual(self.log.attempts, {})

    async def test_last_successful_generation_time(self):
        self.assertIsNone(await self.log.get_last_successful_generation_time(USER))

        await self.log.log_attempt(USER, "first", MODEL, GenerationStatus.SUCCESS)
        first = self.clock.now
        self.clock.advance(minutes=10)
        await self.log.log_attempt(USER, "second", MODEL, GenerationStatus.FAILED)
        await self.log.log_attempt("other-user", "third", MODEL, GenerationStatus.SUCCESS)

        self.assertEqual(await self.log.get_last_successful_generation_time(USER), first)


class TestAttemptTracker(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.log = InMemoryGenerationLog(FixedClock())

    def only_attempt(self):
        attempts = self.log.attempts_for(USER)
        self.assertEqual(len(attempts), 1)
        return attempts[0]

    async def test_success(self):
        async with AttemptTracker(self.log, USER, "a cat", MODEL) as attempt:
            self.assertEqual(self.only_attempt().status, GenerationStatus.PENDING)
            attempt.succeed(moderation={"flags": []})

        record = self.only_attempt()
        self.assertEqual(record.status, GenerationStatus.SUCCESS)
        self.assertEqual(record.model_used, MODEL)
        self.assertEqual(record.detail, {"moderation": {"flags": []}})

    async def test_explicit_failure_keeps_detail(self):
        with self.assertRaises(RuntimeError):
            async with AttemptTracker(self.log, USER, "a cat", MODEL) as attempt:
                attempt.fail(error="quota_exceeded", retryDelay="30s")
                raise RuntimeError("upstream")

        record = self.only_attempt()
        self.assertEqual(record.status, GenerationStatus.FAILED)
        self.assertEqual(record.detail, {"error": "quota_exceeded", "retryDelay": "30s"})

    async def test_unexpected_exception_marks_failed(self):
        with self.assertRaises(KeyError):
            async with AttemptTracker(self.log, USER, "a cat", MODEL):
                raise KeyError("parts")

        record = self.only_attempt()
        self.assertEqual(record.status, GenerationStatus.FAILED)
        self.assertEqual(record.detail, {"error": "KeyError"})

    async def test_exception_after_succeed_marks_failed(self):
        with self.assertRaises(ValueError):
            async with AttemptTracker(self.log, USER, "a cat", MODEL) as attempt:
                attempt.succeed()
                raise ValueError("late")

        self.assertEqual(self.only_attempt().status, GenerationStatus.FAILED)

    async def test_block_without_status_marks_failed(self):
        async with AttemptTracker(self.log, USER, "a cat", MODEL):
            pass

        record = self.only_attempt()
        self.assertEqual(record.status, GenerationStatus.FAILED)
        self.assertEqual(record.detail, {"error": "no_terminal_status"})

    async def test_cancellation_resolves_pending_attempt(self):
        started = asyncio.Event()

        async def slow_generation():
            async with AttemptTracker(self.log, USER, "a cat", MODEL):
                started.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(slow_generation())
        await started.wait()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        record = self.only_attempt()
        self.assertEqual(record.status, GenerationStatus.FAILED)
        self.assertEqual(record.detail, {"error": "CancelledError"})

    async def test_log_outage_does_not_break_the_block(self):
        self.log._insert_attempt = AsyncMock(side_effect=RuntimeError("db down"))

        async with AttemptTracker(self.log, USER, "a cat", MODEL) as attempt:
            attempt.succeed()

        self.assertIsNone(attempt.attempt_id)
        self.assertEqual(attempt.status, GenerationStatus.SUCCESS)


if __name__ == "__main__":
    unittest.main()
