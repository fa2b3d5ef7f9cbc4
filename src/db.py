"""
Async Postgres access for the VinciUI API.

A Database owns one asyncpg pool. It is created in the application lifespan
and handed to the stores that need it; every operation acquires a connection
for its own duration and releases it immediately.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import asyncpg

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = (
    "CREATE EXTENSION IF NOT EXISTS pgcrypto",
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        supabase_id TEXT UNIQUE NOT NULL,
        email TEXT,
        name TEXT,
        picture TEXT,
        tier TEXT NOT NULL DEFAULT 'free',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_usage (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        date DATE NOT NULL,
        images_generated INTEGER NOT NULL DEFAULT 0 CHECK (images_generated >= 0),
        prompts_enhanced INTEGER NOT NULL DEFAULT 0 CHECK (prompts_enhanced >= 0),
        last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (user_id, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS generations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id TEXT NOT NULL,
        prompt TEXT NOT NULL,
        model_used TEXT NOT NULL,
        status TEXT NOT NULL,
        moderation_flags JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generations_user_status_created
        ON generations (user_id, status, created_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS moderation_logs (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        content TEXT NOT NULL,
        content_type TEXT NOT NULL,
        flags JSONB NOT NULL DEFAULT '[]'::jsonb,
        action TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
)


class Database:
    """Thin wrapper around an asyncpg connection pool."""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> "Database":
        if self._pool is not None:
            return self

        # Prepared statements break behind PgBouncer poolers; keep the cache off
        # so direct and pooled URLs behave the same.
        self._pool = await asyncpg.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            statement_cache_size=0,
        )
        logger.info("Postgres pool initialized (min=%s max=%s)", self.min_size, self.max_size)
        return self

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database.connect() must be awaited before use")
        return self._pool

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        async with self._require_pool().acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        async with self._require_pool().acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self._require_pool().acquire() as conn:
            return await conn.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        async with self._require_pool().acquire() as conn:
            return await conn.execute(query, *args)

    async def init_schema(self) -> None:
        """Create the tables used by the API if they do not exist yet."""
        async with self._require_pool().acquire() as conn:
            async with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)
        logger.info("Database schema verified")

    async def ping(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the pool (used during graceful shutdown)."""
        if self._pool is None:
            return
        try:
            await self._pool.close()
        finally:
            self._pool = None
