"""
FastAPI dependencies for the VinciUI API.

Services are built once in the application lifespan and stored on
``app.state``; these accessors hand them to route handlers.

Usage:
    from app.dependencies import get_generation_service

    @router.post("/image")
    async def generate(service: GenerationService = Depends(get_generation_service)):
        ...
"""

from typing import Optional

from fastapi import Request

from app.services.generation import GenerationService
from src.db import Database
from src.usage.rate_limiter import RateLimiter
from src.users.store import UserStore


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_database(request: Request) -> Optional[Database]:
    """The Postgres database, or None when running on in-memory stores."""
    return getattr(request.app.state, "database", None)


__all__ = [
    "get_generation_service",
    "get_rate_limiter",
    "get_user_store",
    "get_database",
]
