"""
Generation and moderation audit log.

Writes are best-effort: a failing write is logged and never fails the user
request. Reads used for policy (last successful generation) do raise, so the
rate limiter can fail closed.

AttemptTracker wraps an external call so that a pending attempt always ends
in exactly one terminal status, whatever happens inside the block.
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.db import Database
from src.types.generation import GenerationAttempt, GenerationStatus, ModerationLogEntry
from src.utils.clock import Clock, as_utc, utc_now

logger = logging.getLogger(__name__)


class GenerationLog(ABC):
    """Interface of the audit trail."""

    async def log_attempt(
        self,
        user_id: str,
        prompt: str,
        model: str,
        status: GenerationStatus,
        detail: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Record a generation attempt.

        Returns:
            The attempt id, or None if the write failed.
        """
        try:
            return await self._insert_attempt(user_id, prompt, model, status, detail or {})
        except Exception as e:
            logger.error(f"Failed to log generation attempt ({status.value}): {e}")
            return None

    async def update_attempt(
        self,
        attempt_id: Optional[str],
        status: GenerationStatus,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Move an attempt to ``status``. No-op when the insert had failed."""
        if attempt_id is None:
            return
        try:
            await self._update_attempt(attempt_id, status, detail)
        except Exception as e:
            logger.error(f"Failed to update generation attempt {attempt_id}: {e}")

    async def log_moderation(
        self,
        user_id: str,
        content: str,
        content_type: str,
        flags: List[str],
        action: str,
    ) -> None:
        """Record a moderation decision."""
        try:
            await self._insert_moderation(user_id, content, content_type, flags, action)
        except Exception as e:
            logger.error(f"Failed to log moderation decision: {e}")

    @abstractmethod
    async def get_last_successful_generation_time(self, user_id: str) -> Optional[datetime]:
        """Timestamp of the user's most recent successful generation, if any."""

    @abstractmethod
    async def _insert_attempt(
        self, user_id: str, prompt: str, model: str, status: GenerationStatus, detail: Dict[str, Any]
    ) -> str:
        ...

    @abstractmethod
    async def _update_attempt(
        self, attempt_id: str, status: GenerationStatus, detail: Optional[Dict[str, Any]]
    ) -> None:
        ...

    @abstractmethod
    async def _insert_moderation(
        self, user_id: str, content: str, content_type: str, flags: List[str], action: str
    ) -> None:
        ...


class PostgresGenerationLog(GenerationLog):
    """Audit trail in the `generations` and `moderation_logs` tables."""

    def __init__(self, db: Database):
        self.db = db

    async def get_last_successful_generation_time(self, user_id: str) -> Optional[datetime]:
        created_at = await self.db.fetchval(
            """
            SELECT created_at
            FROM generations
            WHERE user_id = $1 AND status = 'success'
            ORDER BY created_at DESC
            LIMIT 1
            """,
            user_id,
        )
        return as_utc(created_at) if created_at else None

    async def _insert_attempt(self, user_id, prompt, model, status, detail) -> str:
        attempt_id = await self.db.fetchval(
            """
            INSERT INTO generations (user_id, prompt, model_used, status, moderation_flags)
            VALUES ($1, $2, $3, $4, $5::jsonb)
            RETURNING id
            """,
            user_id,
            prompt,
            model,
            status.value,
            json.dumps(detail),
        )
        return str(attempt_id)

    async def _update_attempt(self, attempt_id, status, detail) -> None:
        if detail is None:
            await self.db.execute(
                "UPDATE generations SET status = $2, updated_at = NOW() WHERE id = $1::uuid",
                attempt_id,
                status.value,
            )
            return
        await self.db.execute(
            """
            UPDATE generations
            SET status = $2,
                moderation_flags = moderation_flags || $3::jsonb,
                updated_at = NOW()
            WHERE id = $1::uuid
            """,
            attempt_id,
            status.value,
            json.dumps(detail),
        )

    async def _insert_moderation(self, user_id, content, content_type, flags, action) -> None:
        await self.db.execute(
            """
            INSERT INTO moderation_logs (user_id, content, content_type, flags, action)
            VALUES ($1, $2, $3, $4::jsonb, $5)
            """,
            user_id,
            content,
            content_type,
            json.dumps(flags),
            action,
        )


class InMemoryGenerationLog(GenerationLog):
    """Process-local audit trail (development and tests)."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self.attempts: Dict[str, GenerationAttempt] = {}
        self.moderation_entries: List[ModerationLogEntry] = []
        self._lock = asyncio.Lock()

    async def get_last_successful_generation_time(self, user_id: str) -> Optional[datetime]:
        times = [
            a.created_at
            for a in self.attempts.values()
            if a.user_id == user_id and a.status == GenerationStatus.SUCCESS
        ]
        return max(times) if times else None

    def attempts_for(self, user_id: str) -> List[GenerationAttempt]:
        return [a for a in self.attempts.values() if a.user_id == user_id]

    async def _insert_attempt(self, user_id, prompt, model, status, detail) -> str:
        attempt_id = str(uuid.uuid4())
        async with self._lock:
            self.attempts[attempt_id] = GenerationAttempt(
                id=attempt_id,
                user_id=user_id,
                prompt=prompt,
                model_used=model,
                status=status,
                detail=dict(detail),
                created_at=self._clock(),
            )
        return attempt_id

    async def _update_attempt(self, attempt_id, status, detail) -> None:
        async with self._lock:
            attempt = self.attempts[attempt_id]
            attempt.status = status
            if detail:
                attempt.detail.update(detail)
            attempt.updated_at = self._clock()

    async def _insert_moderation(self, user_id, content, content_type, flags, action) -> None:
        async with self._lock:
            self.moderation_entries.append(
                ModerationLogEntry(
                    user_id=user_id,
                    content=content,
                    content_type=content_type,
                    flags=list(flags),
                    action=action,
                    created_at=self._clock(),
                )
            )


class AttemptTracker:
    """
    Async context manager around one external generation call.

    Logs a pending attempt on entry. On exit the attempt is moved to the
    terminal status set with ``succeed``/``fail``; if neither was called and
    the block raised (or was cancelled), it is marked failed with the
    exception type. Exceptions are never suppressed.

    Usage:
        async with AttemptTracker(log, user_id, prompt, model) as attempt:
            image = await gemini.generate_content(...)
            await usage_store.increment_usage(user_id, UsageAction.IMAGE)
            attempt.succeed()
    """

    def __init__(self, log: GenerationLog, user_id: str, prompt: str, model: str):
        self.log = log
        self.user_id = user_id
        self.prompt = prompt
        self.model = model
        self.attempt_id: Optional[str] = None
        self._status: Optional[GenerationStatus] = None
        self._detail: Dict[str, Any] = {}

    @property
    def status(self) -> Optional[GenerationStatus]:
        return self._status

    def succeed(self, **detail: Any) -> None:
        self._status = GenerationStatus.SUCCESS
        self._detail = detail

    def fail(self, **detail: Any) -> None:
        self._status = GenerationStatus.FAILED
        self._detail = detail

    async def __aenter__(self) -> "AttemptTracker":
        self.attempt_id = await self.log.log_attempt(
            self.user_id, self.prompt, self.model, GenerationStatus.PENDING
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None and self._status != GenerationStatus.FAILED:
            # A success recorded before a later error does not stand.
            self._status = GenerationStatus.FAILED
            self._detail = {"error": exc_type.__name__}
        elif self._status is None:
            self._status = GenerationStatus.FAILED
            self._detail = {"error": "no_terminal_status"}

        # Shielded so a cancelled request still resolves its pending row.
        await asyncio.shield(
            self.log.update_attempt(self.attempt_id, self._status, self._detail)
        )
        return False
