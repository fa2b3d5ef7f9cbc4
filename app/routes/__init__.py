"""API routes for the VinciUI API."""

from .auth import router as auth_router
from .generate import router as generate_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "generate_router",
    "health_router",
]
