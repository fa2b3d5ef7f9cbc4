"""
Async client for the Gemini generateContent REST endpoint.

The REST API is called directly (rather than through an SDK) so that the raw
status code and the RetryInfo detail of 429 responses are available to the
caller.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from src.types.generation import InputImage

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 60.0


class GeminiError(Exception):
    """Base exception for Gemini API failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        raw_error: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.raw_error = raw_error


class GeminiConfigError(GeminiError):
    """Raised when no API key is configured."""


class GeminiQuotaError(GeminiError):
    """Raised when Gemini answers 429 (upstream quota exhausted)."""

    def __init__(
        self,
        message: str,
        retry_delay: Optional[str] = None,
        raw_error: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, status_code=429, raw_error=raw_error)
        self.retry_delay = retry_delay


class GeminiTimeoutError(GeminiError):
    """Raised when a request exceeds the configured timeout."""


def parse_retry_delay(error_body: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Extract the retry hint from a Gemini error body.

    Looks for the ``error.details[]`` entry whose ``@type`` mentions RetryInfo
    and returns its ``retryDelay`` (e.g. "30s").
    """
    if not isinstance(error_body, dict):
        return None
    error = error_body.get("error")
    if not isinstance(error, dict):
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and "RetryInfo" in str(detail.get("@type", "")):
            delay = detail.get("retryDelay")
            return str(delay) if delay else None
    return None


def _candidate_parts(response: Dict[str, Any]) -> List[List[Dict[str, Any]]]:
    """Parts of every well-formed candidate, in response order."""
    parts_per_candidate = []
    for candidate in response.get("candidates") or []:
        if not isinstance(candidate, dict):
            continue
        content = candidate.get("content")
        if not isinstance(content, dict):
            continue
        parts_per_candidate.append([p for p in content.get("parts") or [] if isinstance(p, dict)])
    return parts_per_candidate


def extract_image(response: Dict[str, Any]) -> Optional[str]:
    """Return the first inline image found in any candidate as a data URI."""
    for parts in _candidate_parts(response):
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return f"data:{mime};base64,{inline['data']}"
    return None


def extract_text(response: Dict[str, Any]) -> Optional[str]:
    """Return the joined text parts of the first candidate that has any, or None."""
    for parts in _candidate_parts(response):
        text = "".join(p["text"] for p in parts if isinstance(p.get("text"), str)).strip()
        if text:
            return text
    return None


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def image_part(image: InputImage) -> Dict[str, Any]:
    """Build an inlineData part, stripping any data-URI header."""
    data = image.data
    mime = image.mime_type
    if data.startswith("data:") and "," in data:
        header, data = data.split(",", 1)
        mime = header[len("data:"):].split(";", 1)[0] or mime
    return {"inlineData": {"mimeType": mime, "data": data}}


class GeminiClient:
    """
    Minimal Gemini REST client.

    Args:
        api_key: Gemini API key. Calls raise GeminiConfigError when missing.
        base_url: API base URL.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests inject httpx.MockTransport).
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_content(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Call ``models/{model}:generateContent``.

        Args:
            model: Model name, e.g. "gemini-2.5-flash".
            parts: Content parts (text and/or inlineData).
            generation_config: Optional generationConfig object.

        Returns:
            The decoded JSON response.

        Raises:
            GeminiConfigError: No API key.
            GeminiQuotaError: HTTP 429.
            GeminiTimeoutError: The request timed out.
            GeminiError: Any other transport failure or non-2xx status.
        """
        if not self.api_key:
            raise GeminiConfigError("Gemini API key is not configured")

        payload: Dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            payload["generationConfig"] = generation_config

        url = f"{self.base_url}/models/{model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise GeminiTimeoutError(f"Gemini request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise GeminiError(f"Gemini request failed: {type(e).__name__}") from e

        if response.status_code == 429:
            error_body = _json_or_none(response)
            retry_delay = parse_retry_delay(error_body)
            logger.warning(f"Gemini quota exceeded for {model} (retryDelay={retry_delay})")
            raise GeminiQuotaError(
                "Gemini API quota exceeded",
                retry_delay=retry_delay,
                raw_error=error_body,
            )

        if response.status_code >= 400:
            error_body = _json_or_none(response)
            message = "Unknown error"
            if error_body and isinstance(error_body.get("error"), dict):
                message = error_body["error"].get("message", message)
            raise GeminiError(
                f"Gemini API error {response.status_code}: {message}",
                status_code=response.status_code,
                raw_error=error_body,
            )

        body = _json_or_none(response)
        if body is None:
            raise GeminiError("Gemini returned a non-JSON response", status_code=response.status_code)
        return body


def _json_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    if not response.content:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
