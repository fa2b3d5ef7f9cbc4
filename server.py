"""
Backend server for VinciUI.
Provides API endpoints for Gemini image generation and prompt tooling,
guarded by per-tier quotas and content moderation.

This is the main entry point that assembles the modular components
from the app package.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

# Configure structured logging FIRST, before other imports that use logging
from src.utils.logging import setup_logging

logger = setup_logging(service_name="vinci-ui-api")

from src.config import Settings, get_settings
from src.db import Database
from src.generation.gemini import GeminiClient
from src.generation.log import InMemoryGenerationLog, PostgresGenerationLog
from src.moderation import ContentModerator
from src.usage import InMemoryUsageStore, PostgresUsageStore, RateLimiter
from src.users import InMemoryUserStore, PostgresUserStore

from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import auth_router, generate_router, health_router
from app.services import GenerationService

settings: Settings = get_settings()

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================

SENSITIVE_KEYS = ("api_key", "apikey", "key=", "secret", "token", "authorization", "bearer")


def filter_sensitive_breadcrumbs(crumb, hint):
    """Drop credentials from HTTP and log breadcrumbs before they leave the process."""
    if crumb.get("category") == "httplib":
        data = crumb.get("data")
        if isinstance(data, dict) and "url" in data:
            data["url"] = re.sub(r"([?&]key=)[^&]*", r"\1[FILTERED]", data["url"])

    if crumb.get("category") in ("console", "log") and "message" in crumb:
        message = str(crumb["message"]).lower()
        if any(key in message for key in SENSITIVE_KEYS):
            crumb["message"] = "[FILTERED - may contain sensitive data]"

    return crumb


if settings.is_sentry_configured:
    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        send_default_pii=False,
        release=sentry_settings.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")
else:
    logger.info("Sentry DSN not configured, error tracking disabled")


# =============================================================================
# Service Wiring
# =============================================================================

def build_services(config: Settings, database: Optional[Database] = None) -> Dict[str, Any]:
    """
    Build the stores and services that route handlers read from ``app.state``.

    With a database the Postgres stores are used; otherwise everything lives
    in process memory and is lost on restart.
    """
    if database is not None:
        user_store = PostgresUserStore(database)
        usage_store = PostgresUsageStore(database)
        generation_log = PostgresGenerationLog(database)
    else:
        user_store = InMemoryUserStore()
        usage_store = InMemoryUsageStore()
        generation_log = InMemoryGenerationLog()

    gemini_settings = config.gemini
    gemini = GeminiClient(
        api_key=gemini_settings.gemini_api_key.get_secret_value() if gemini_settings.gemini_api_key else None,
        base_url=gemini_settings.gemini_api_base,
        timeout=gemini_settings.gemini_timeout_seconds,
    )
    rate_limiter = RateLimiter(usage_store, generation_log, user_store=user_store)
    generation_service = GenerationService(
        rate_limiter=rate_limiter,
        usage_store=usage_store,
        generation_log=generation_log,
        moderator=ContentModerator(generation_log),
        gemini=gemini,
        text_model=gemini_settings.gemini_text_model,
        ai_moderation_enabled=config.moderation.moderation_ai_enabled,
    )

    return {
        "database": database,
        "user_store": user_store,
        "usage_store": usage_store,
        "generation_log": generation_log,
        "rate_limiter": rate_limiter,
        "generation_service": generation_service,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup/shutdown for shared resources."""
    config = get_settings()
    database = None
    if config.is_database_configured:
        db_settings = config.database
        database = Database(
            db_settings.database_url,
            min_size=db_settings.database_pool_min_size,
            max_size=db_settings.database_pool_max_size,
        )
        await database.connect()
        if db_settings.database_init_schema:
            await database.init_schema()
    else:
        logger.warning("DATABASE_URL not set; usage and users are kept in memory")

    if not config.is_gemini_configured:
        logger.warning("GEMINI_API_KEY not set; generation requests will fail")

    logger.info("Starting VinciUI API", extra={"config": config.get_config_summary()})

    for name, value in build_services(config, database).items():
        setattr(app.state, name, value)

    yield

    if database is not None:
        try:
            await database.close()
        except Exception as e:
            logger.warning("Failed to close Postgres pool: %s", e)


app = FastAPI(
    title="VinciUI API",
    description="""
## VinciUI Image Generation API

Generate and edit images with Google Gemini, and enhance or refine prompts
before generating.

### Authentication

Endpoints under `/api/generate`, `/api/auth/me` and `/api/usage` require a
Supabase session JWT via `Authorization: Bearer <token>` or the auth cookie.

### Quotas

| Tier | Images | Enhancements | Cooldown |
|------|--------|--------------|----------|
| free | 2 total | 5/day | 30 minutes |
| premium | 100/day | 200/day | none |
| tester | 50/day | 100/day | none |
| developer | 1000/day | 1000/day | none |

Daily quotas reset at midnight UTC.
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Response-Time", "Retry-After"],
)

if settings.logging.request_logging_enabled:
    app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(generate_router)


if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=not settings.is_production)
