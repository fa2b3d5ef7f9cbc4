"""
Text helpers for prompts and log lines.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def normalize_prompt(text: str) -> str:
    """
    Strip surrounding whitespace and control characters from a prompt.

    Inner whitespace is kept as typed, so moderation sees the prompt the way
    the image model will.
    """
    if not text:
        return ""
    return _CONTROL_CHARACTERS.sub("", text).strip()


def sanitize_for_log(text: str, max_length: int = 30) -> str:
    """
    Sanitize text for logging: truncate and collapse whitespace.

    Args:
        text: The text to sanitize.
        max_length: Maximum length before truncation.

    Returns:
        The sanitized text suitable for logging.
    """
    if not text:
        return "[empty]"
    sanitized = text[:max_length] + "..." if len(text) > max_length else text
    return _WHITESPACE.sub(" ", sanitized)
