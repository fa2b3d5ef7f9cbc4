"""Utility modules for VinciUI."""

from .logging import (
    DevelopmentFormatter,
    JSONFormatter,
    RequestContext,
    RequestContextFilter,
    SensitiveDataFilter,
    Timer,
    clear_request_context,
    get_request_context,
    get_request_id,
    redact_sensitive_data,
    set_request_context,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "set_request_context",
    "clear_request_context",
    "get_request_id",
    "get_request_context",
    "RequestContext",
    "Timer",
    "JSONFormatter",
    "DevelopmentFormatter",
    "RequestContextFilter",
    "SensitiveDataFilter",
    "redact_sensitive_data",
]
