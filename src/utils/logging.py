"""
Logging setup for the VinciUI API.

Every record passes two filters on its way to stdout: one stamps the current
request context (request id, user id, tier) and one scrubs credentials and
inline image payloads. Production writes one JSON object per line, local
development writes coloured text.
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Pattern, Tuple

from src.config import get_settings

HANDLER_NAME = "vinci-stdout"
REDACTED = "[REDACTED]"

# Libraries whose INFO output would drown the request logs
QUIET_LOGGERS: Tuple[str, ...] = ("uvicorn.access", "httpx", "httpcore", "asyncio")


@dataclass(frozen=True)
class RequestContext:
    """Who and what the current log lines belong to."""

    request_id: Optional[str] = None
    user_id: Optional[str] = None
    tier: Optional[str] = None


EMPTY_CONTEXT = RequestContext()
_request_context: ContextVar[RequestContext] = ContextVar("request_context", default=EMPTY_CONTEXT)

# (pattern, replacement) pairs applied in order. Where a label precedes the
# secret, the label is kept so the line still says what was hidden.
REDACTIONS: List[Tuple[Pattern, str]] = [
    (re.compile(r"data:(image/[\w.+-]+);base64,[A-Za-z0-9+/=]+"), r"data:\1;base64,[IMAGE]"),
    (re.compile(r"AIza[\w-]{30,}"), REDACTED),
    (re.compile(r"eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+"), REDACTED),
    (re.compile(r"(bearer\s+)[\w.-]+", re.IGNORECASE), r"\1" + REDACTED),
    (re.compile(r"([?&]key=)[\w-]+", re.IGNORECASE), r"\1" + REDACTED),
    (
        re.compile(
            r"((?:api[_-]?key|secret|token|authorization)[\"']?\s*[:=]\s*[\"']?)[^\s,}\"']+",
            re.IGNORECASE,
        ),
        r"\1" + REDACTED,
    ),
]

_STANDARD_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message", "asctime", "request_id", "user_id", "tier",
}


def redact_sensitive_data(message: str) -> str:
    """Replace API keys, tokens and base64 image data in ``message``."""
    if not message:
        return message
    for pattern, replacement in REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
    }


class RequestContextFilter(logging.Filter):
    """Copy the current request context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _request_context.get()
        record.request_id = context.request_id or "-"
        record.user_id = context.user_id or "-"
        record.tier = context.tier or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Scrub the message template and any string arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_sensitive_data(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line for log shipping.

    Example:
        {"timestamp": "2026-03-10T12:00:00.123456+00:00", "level": "INFO",
         "logger": "app.services.generation", "message": "Image generated",
         "service": "vinci-ui-api", "request_id": "abc-123",
         "user_id": "user-456", "tier": "free", "extra": {...}}
    """

    def __init__(self, service_name: str = "vinci-ui-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
            "tier": getattr(record, "tier", "-"),
        }

        extra = _extra_fields(record)
        if extra:
            entry["extra"] = extra
        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """Coloured single-line output: time, level, request/user, logger, message."""

    LEVEL_COLORS: Dict[int, str] = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self):
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "0")
        level = f"\033[{color}m{record.levelname:<8}\033[0m"
        who = f"{getattr(record, 'request_id', '-')[:8]}/{getattr(record, 'user_id', '-')[:8]}"

        line = f"{self.formatTime(record, self.datefmt)} {level} [{who}] {record.name}: {record.getMessage()}"

        extra = _extra_fields(record)
        if extra:
            line += " \033[2m" + " ".join(f"{key}={value}" for key, value in extra.items()) + "\033[0m"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    service_name: str = "vinci-ui-api",
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> logging.Logger:
    """
    Install the stdout handler on the root logger.

    Level and format default to LOG_LEVEL and LOG_FORMAT_JSON; production
    always logs JSON. Calling it again replaces the handler it installed
    earlier and leaves other handlers alone.

    Returns:
        The service logger.
    """
    settings = get_settings()
    level = level or settings.logging.log_level
    if json_format is None:
        json_format = settings.logging.log_format_json or settings.is_production

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JSONFormatter(service_name) if json_format else DevelopmentFormatter())

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.debug(
        "Logging configured",
        extra={"log_level": level, "format": "json" if json_format else "development"},
    )
    return logger


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    tier: Optional[str] = None,
) -> None:
    """Update the given fields of the current request context; others are kept."""
    updates = {
        field: value
        for field, value in (("request_id", request_id), ("user_id", user_id), ("tier", tier))
        if value is not None
    }
    _request_context.set(replace(_request_context.get(), **updates))


def clear_request_context() -> None:
    _request_context.set(EMPTY_CONTEXT)


def get_request_context() -> RequestContext:
    return _request_context.get()


def get_request_id() -> Optional[str]:
    return _request_context.get().request_id


class Timer:
    """
    Measure a block and log how long it took.

        with Timer("gemini_generate_image", logger):
            response = await client.generate_content(...)

    Exceptions are not suppressed; the line says "failed" instead of
    "completed".
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.name = name
        self.logger = logger
        self.level = level
        self.elapsed_ms = 0.0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if self.logger is not None:
            outcome = "failed" if exc_type else "completed"
            self.logger.log(
                self.level,
                f"{self.name} {outcome} in {self.elapsed_ms:.2f}ms",
                extra={"operation": self.name, "duration_ms": round(self.elapsed_ms, 2)},
            )
