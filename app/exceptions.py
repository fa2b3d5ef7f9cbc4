"""
Custom exception classes for the VinciUI API.

Every exception maps to an HTTP status code and a machine-readable error
code, and renders to the same JSON error body.

Exception Hierarchy:
    VinciException (base)
    ├── ValidationError (400)
    ├── PolicyBlockedError (400)
    ├── AuthenticationError (401)
    ├── QuotaExceededError (429)
    ├── UpstreamQuotaError (429)
    ├── UpstreamFailureError (500)
    ├── UpstreamTimeoutError (504)
    └── DatabaseError (500)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes for API responses."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    PROMPT_TOO_LONG = "PROMPT_TOO_LONG"
    INVALID_IMAGE = "INVALID_IMAGE"

    # Moderation (400)
    CONTENT_BLOCKED = "CONTENT_BLOCKED"

    # Authentication errors (401)
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"

    # Quota errors (429)
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UPSTREAM_QUOTA_EXCEEDED = "UPSTREAM_QUOTA_EXCEEDED"

    # Upstream errors (500/504)
    GENERATION_FAILED = "GENERATION_FAILED"
    NO_IMAGE_GENERATED = "NO_IMAGE_GENERATED"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"

    # Database errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"


class VinciException(Exception):
    """
    Base exception class for all VinciUI API errors.

    Attributes:
        message: Human-readable error message (safe for clients).
        error_code: Machine-readable error code.
        status_code: HTTP status code to return.
        details: Additional context about the error.
        internal_message: Detailed message for logging (never sent to clients).
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.internal_message = internal_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to the JSON error body."""
        response = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


# =============================================================================
# Validation Errors (400 Bad Request)
# =============================================================================

class ValidationError(VinciException):
    """
    Raised when a request is malformed: empty or over-long prompt, invalid
    image payload, unknown refine mode.
    """

    status_code = 400
    default_error_code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid request data"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            # Truncate long values to avoid echoing whole prompts
            str_value = str(value)
            details["value"] = str_value[:100] + "..." if len(str_value) > 100 else str_value

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )


class PolicyBlockedError(VinciException):
    """Raised when moderation blocks the content of a request."""

    status_code = 400
    default_error_code = ErrorCode.CONTENT_BLOCKED
    default_message = "Content blocked"

    def __init__(
        self,
        message: Optional[str] = None,
        flags: Optional[List[str]] = None,
        severity: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        self.flags = list(flags or [])
        details["flags"] = self.flags
        if severity:
            details["severity"] = severity

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )


# =============================================================================
# Authentication Errors (401 Unauthorized)
# =============================================================================

class AuthenticationError(VinciException):
    """Raised when the bearer token is missing, malformed or expired."""

    status_code = 401
    default_error_code = ErrorCode.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"


# =============================================================================
# Quota Errors (429 Too Many Requests)
# =============================================================================

class QuotaExceededError(VinciException):
    """
    Raised when the caller's tier quota or cooldown denies the request.
    """

    status_code = 429
    default_error_code = ErrorCode.QUOTA_EXCEEDED
    default_message = "Usage quota exceeded"

    def __init__(
        self,
        message: Optional[str] = None,
        quota_type: Optional[str] = None,
        remaining_quota: Optional[int] = None,
        reset_time: Optional[datetime] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        self.reset_time = reset_time
        self.remaining_quota = remaining_quota
        if quota_type:
            details["quota_type"] = quota_type

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Denial body; quota fields sit at the top level, camelCased like success bodies."""
        response = super().to_dict()
        response["message"] = self.message
        if self.remaining_quota is not None:
            response["remainingQuota"] = self.remaining_quota
        if self.reset_time is not None:
            response["resetTime"] = self.reset_time.isoformat()
        return response

    @property
    def retry_after(self) -> Optional[int]:
        """Seconds until the quota resets, for the Retry-After header."""
        if self.reset_time is None:
            return None
        seconds = int((self.reset_time - datetime.now(self.reset_time.tzinfo)).total_seconds())
        return max(seconds, 1)


class UpstreamQuotaError(VinciException):
    """Raised when Gemini itself answers 429."""

    status_code = 429
    default_error_code = ErrorCode.UPSTREAM_QUOTA_EXCEEDED
    default_message = "Please wait a few minutes and try again, or upgrade your plan."

    def __init__(
        self,
        retry_delay: Optional[str] = None,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        self.retry_delay = retry_delay
        if retry_delay:
            details["retry_delay"] = retry_delay
            message = message or f"Please wait {retry_delay} and try again, or upgrade your plan."

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )

    @property
    def retry_after(self) -> Optional[int]:
        """Parse a Gemini delay like '30s' or '1.5s' into whole seconds."""
        if not self.retry_delay:
            return None
        try:
            return max(int(float(self.retry_delay.rstrip("s"))), 1)
        except ValueError:
            return None


# =============================================================================
# Upstream Errors (500 / 504)
# =============================================================================

class UpstreamFailureError(VinciException):
    """Raised when Gemini fails or returns no usable result."""

    status_code = 500
    default_error_code = ErrorCode.GENERATION_FAILED
    default_message = "Image generation failed. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        service_name: str = "gemini",
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        details["service"] = service_name

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )


class UpstreamTimeoutError(UpstreamFailureError):
    """Raised when the Gemini call exceeds its timeout."""

    status_code = 504
    default_error_code = ErrorCode.UPSTREAM_TIMEOUT
    default_message = "The image service took too long to respond. Please try again."


# =============================================================================
# Database Errors (500 Internal Server Error)
# =============================================================================

class DatabaseError(VinciException):
    """Raised when a required database operation fails."""

    status_code = 500
    default_error_code = ErrorCode.DATABASE_ERROR
    default_message = "A database error occurred. Please try again later."
