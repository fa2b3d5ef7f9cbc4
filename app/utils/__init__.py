"""Utility functions for the VinciUI API."""

from .sanitization import normalize_prompt, sanitize_for_log

__all__ = [
    "normalize_prompt",
    "sanitize_for_log",
]
