"""
Account endpoints: current user and usage.
"""

import logging

from fastapi import APIRouter, Depends, Response

from app.auth import get_current_principal
from app.dependencies import get_rate_limiter
from app.models.requests import MeResponse, UserResponse
from src.config import get_settings
from src.types.generation import Principal
from src.types.usage import QuotaSnapshot
from src.usage.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


@router.get("/auth/me", response_model=MeResponse)
async def get_me(
    principal: Principal = Depends(get_current_principal),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Return the signed-in user and a fresh usage snapshot."""
    try:
        usage = await rate_limiter.usage_snapshot(principal.id, principal.tier)
    except Exception as e:
        logger.warning(f"Could not read usage for user {principal.id[:8]}...: {e}")
        usage = None

    return MeResponse(
        user=UserResponse(
            id=principal.id,
            email=principal.email,
            name=principal.name,
            picture=principal.picture,
            tier=principal.tier.value,
        ),
        usage=usage,
    )


@router.post("/auth/logout")
async def logout(response: Response):
    """Clear the auth cookie. Supabase sessions are ended client-side."""
    response.delete_cookie(get_settings().auth.auth_cookie_name)
    return {"success": True}


@router.get("/usage", response_model=QuotaSnapshot)
async def get_usage(
    principal: Principal = Depends(get_current_principal),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Return the caller's usage and limits. Read failures surface as errors here."""
    return await rate_limiter.usage_snapshot(principal.id, principal.tier)
