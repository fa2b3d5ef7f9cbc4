"""
Health check and root endpoints.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import sentry_sdk
from fastapi import APIRouter, Depends

from app.dependencies import get_database
from src.config import get_settings
from src.db import Database

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def get_database_status(db: Optional[Database]) -> Dict[str, Any]:
    """
    Check database connectivity with a trivial query.
    """
    if db is None:
        return {"configured": False, "status": "in_memory"}

    start = time.perf_counter()
    connected = await db.ping()
    latency_ms = (time.perf_counter() - start) * 1000
    return {
        "configured": True,
        "status": "up" if connected else "down",
        "latency_ms": round(latency_ms, 2),
    }


@router.get("/")
async def root() -> Dict[str, Any]:
    return {"name": "VinciUI API", "status": "ok"}


@router.get(
    "/api/health",
    summary="System health check",
    description="""
Health check endpoint for monitoring and load balancers.

Reports database connectivity and whether the Gemini API key and Sentry
are configured.

**Authentication**: Not required.
    """,
)
async def health_check(db: Optional[Database] = Depends(get_database)) -> Dict[str, Any]:
    settings = get_settings()
    database = await get_database_status(db)

    status = "healthy"
    if database["status"] == "down":
        status = "degraded"
        logger.warning("Health check: database unreachable")

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.security.environment,
        "services": {
            "database": database,
            "gemini": {"configured": settings.is_gemini_configured},
            "sentry": {"configured": settings.is_sentry_configured, "active": sentry_sdk.is_initialized()},
        },
    }
