"""
User records: Supabase identity to local user id and account tier.

The tier is read from here on every request; it is never taken from the JWT.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional

from src.db import Database
from src.types.generation import Principal
from src.types.usage import Tier, parse_tier

logger = logging.getLogger(__name__)


class UserStore(ABC):
    """Interface of the user table."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Principal]:
        """Look up a user by local id."""

    @abstractmethod
    async def get_or_create_by_supabase_id(
        self,
        supabase_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        picture: Optional[str] = None,
    ) -> Principal:
        """
        Resolve a Supabase identity to a local user, creating it on first sign-in.

        New users start on the free tier. Profile fields are refreshed from the
        token on every call; the tier is left untouched.
        """

    @abstractmethod
    async def set_tier(self, user_id: str, tier: Tier) -> None:
        """Change a user's tier."""

    async def get_tier(self, user_id: str) -> Tier:
        user = await self.get_user(user_id)
        return user.tier if user else Tier.FREE


class PostgresUserStore(UserStore):
    """Users persisted in the `users` table."""

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _principal_from_row(row) -> Principal:
        return Principal(
            id=str(row["id"]),
            email=row["email"],
            name=row["name"],
            picture=row["picture"],
            tier=parse_tier(row["tier"]),
        )

    async def get_user(self, user_id: str) -> Optional[Principal]:
        row = await self.db.fetchrow(
            "SELECT id, email, name, picture, tier FROM users WHERE id::text = $1",
            user_id,
        )
        return self._principal_from_row(row) if row else None

    async def get_or_create_by_supabase_id(self, supabase_id, email=None, name=None, picture=None) -> Principal:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (supabase_id, email, name, picture)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (supabase_id)
            DO UPDATE SET email = COALESCE(EXCLUDED.email, users.email),
                          name = COALESCE(EXCLUDED.name, users.name),
                          picture = COALESCE(EXCLUDED.picture, users.picture),
                          updated_at = NOW()
            RETURNING id, email, name, picture, tier
            """,
            supabase_id,
            email,
            name,
            picture,
        )
        return self._principal_from_row(row)

    async def set_tier(self, user_id: str, tier: Tier) -> None:
        await self.db.execute(
            "UPDATE users SET tier = $2, updated_at = NOW() WHERE id::text = $1",
            user_id,
            Tier(tier).value,
        )
        logger.info(f"Set tier for user {user_id[:8]}... to {Tier(tier).value}")


class InMemoryUserStore(UserStore):
    """Process-local users (development and tests)."""

    def __init__(self):
        self._users: Dict[str, Principal] = {}
        self._by_supabase_id: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get_user(self, user_id: str) -> Optional[Principal]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_or_create_by_supabase_id(self, supabase_id, email=None, name=None, picture=None) -> Principal:
        async with self._lock:
            user_id = self._by_supabase_id.get(supabase_id)
            if user_id is None:
                user_id = str(uuid.uuid4())
                self._by_supabase_id[supabase_id] = user_id
                self._users[user_id] = Principal(id=user_id, tier=Tier.FREE)
            user = self._users[user_id]
            user.email = email or user.email
            user.name = name or user.name
            user.picture = picture or user.picture
            return user.model_copy()

    async def set_tier(self, user_id: str, tier: Tier) -> None:
        async with self._lock:
            if user_id in self._users:
                self._users[user_id].tier = Tier(tier)
