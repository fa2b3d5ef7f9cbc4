"""
Shared builders for VinciUI tests: a controllable clock, Gemini response
bodies, Supabase tokens and a wired GenerationService.
"""

import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import jwt

TEST_JWT_SECRET = "test-supabase-jwt-secret-for-unit-tests-only"

# 1x1 PNG header, valid base64
PNG_BASE64 = "iVBORw0KGgo="
PNG_DATA_URI = f"data:image/png;base64,{PNG_BASE64}"

SAFE_VERDICT = {"safe": True, "reason": "harmless", "severity": "low"}


class FixedClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def text_response(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def verdict_response(verdict: Dict[str, Any]) -> Dict[str, Any]:
    return text_response(json.dumps(verdict))


def image_response(data: str = PNG_BASE64, mime_type: str = "image/png") -> Dict[str, Any]:
    return {
        "candidates": [
            {"content": {"parts": [
                {"text": "Here is your image"},
                {"inlineData": {"mimeType": mime_type, "data": data}},
            ]}}
        ]
    }


def make_token(
    sub: str = "supabase-user-1",
    email: str = "painter@example.com",
    expires_in: int = 3600,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    now = int(time.time())
    claims = {
        "sub": sub,
        "email": email,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": metadata if metadata is not None else {"full_name": "Test Painter"},
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(**kwargs) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(**kwargs)}"}


def mock_gemini(*responses) -> MagicMock:
    """A GeminiClient stand-in whose generate_content returns ``responses`` in order."""
    gemini = MagicMock()
    gemini.generate_content = AsyncMock(side_effect=list(responses))
    return gemini


def build_service(gemini=None, clock: Optional[FixedClock] = None, ai_moderation_enabled: bool = False):
    """
    Wire a GenerationService on in-memory stores.

    Returns:
        (service, usage_store, generation_log)
    """
    from app.services.generation import GenerationService
    from src.generation.log import InMemoryGenerationLog
    from src.moderation.engine import ContentModerator
    from src.usage.rate_limiter import RateLimiter
    from src.usage.store import InMemoryUsageStore

    clock = clock or FixedClock()
    usage_store = InMemoryUsageStore(clock)
    generation_log = InMemoryGenerationLog(clock)
    rate_limiter = RateLimiter(usage_store, generation_log, clock=clock)
    service = GenerationService(
        rate_limiter=rate_limiter,
        usage_store=usage_store,
        generation_log=generation_log,
        moderator=ContentModerator(generation_log),
        gemini=gemini if gemini is not None else mock_gemini(),
        ai_moderation_enabled=ai_moderation_enabled,
    )
    return service, usage_store, generation_log
