"""
Request logging middleware for the VinciUI API.

Tags every request with an ID, times it and writes one log line per request
once the response is known. The authenticated user and tier are read back
from ``request.state``, where the auth dependency leaves them.
"""

import logging
import time
import uuid
from typing import Callable, FrozenSet, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log method, path, status and duration for each request.

    ``skip_paths`` are never logged (docs, favicon). ``quiet_paths`` are
    polled by load balancers and only show up when they fail.
    """

    SKIP_PATHS: FrozenSet[str] = frozenset({"/docs", "/redoc", "/openapi.json", "/favicon.ico"})
    QUIET_PATHS: FrozenSet[str] = frozenset({"/", "/api/health"})

    def __init__(
        self,
        app,
        skip_paths: Optional[FrozenSet[str]] = None,
        quiet_paths: Optional[FrozenSet[str]] = None,
    ):
        super().__init__(app)
        self.skip_paths = self.SKIP_PATHS if skip_paths is None else skip_paths
        self.quiet_paths = self.QUIET_PATHS if quiet_paths is None else quiet_paths

    def _should_log(self, path: str, status_code: int) -> bool:
        if path in self.skip_paths:
            return False
        return status_code >= 400 or path not in self.quiet_paths

    @staticmethod
    def _level_for(status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        if status_code >= 400:
            return logging.WARNING
        return logging.INFO

    @staticmethod
    def _client_ip(request: Request) -> str:
        # First hop of X-Forwarded-For is the browser behind our proxy
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        details = {
            "http_method": request.method,
            "http_path": request.url.path,
            "client_ip": self._client_ip(request),
        }
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception as exc:
                details["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
                logger.error(
                    f"{request.method} {request.url.path} FAILED after {details['duration_ms']}ms: "
                    f"{type(exc).__name__}",
                    extra={"event": "http_request_error", "error_type": type(exc).__name__, **details},
                    exc_info=True,
                )
                raise

            duration_ms = (time.perf_counter() - started) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[RESPONSE_TIME_HEADER] = f"{duration_ms:.2f}ms"

            # The endpoint ran in its own context, so user and tier come from request.state
            user_id = getattr(request.state, "user_id", None)
            tier = getattr(request.state, "tier", None)
            set_request_context(user_id=user_id, tier=tier)

            if self._should_log(request.url.path, response.status_code):
                logger.log(
                    self._level_for(response.status_code),
                    f"{request.method} {request.url.path} {response.status_code} ({duration_ms:.2f}ms)",
                    extra={
                        "event": "http_request",
                        "http_status": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                        **details,
                    },
                )
            return response
        finally:
            clear_request_context()
