"""
Secondary moderation verdict from the Gemini text model.

The check fails closed: whenever no trustworthy verdict is obtained the
result is blocked with the 'ai_moderation_failed' flag. Whether such a
failure stops the request is decided by the caller.
"""

import json
import logging

from src.generation.gemini import GeminiClient, extract_text
from src.generation.prompts import ai_moderation_prompt, strip_code_fences
from src.types.moderation import ModerationAction, ModerationResult, Severity

logger = logging.getLogger(__name__)

AI_MODERATION_TEMPERATURE = 0.1
AI_FAILED_FLAG = "ai_moderation_failed"
AI_FLAGGED_FLAG = "ai_flagged"


def moderation_unavailable() -> ModerationResult:
    return ModerationResult(
        allowed=False,
        flags=[AI_FAILED_FLAG],
        action=ModerationAction.BLOCKED,
        severity=Severity.MEDIUM,
        message="Content moderation temporarily unavailable. Please try again later.",
    )


def _parse_severity(value) -> Severity:
    try:
        return Severity(str(value).lower())
    except ValueError:
        return Severity.MEDIUM


async def ai_moderate(content: str, client: GeminiClient, model: str) -> ModerationResult:
    """
    Ask the text model whether ``content`` is safe.

    Args:
        content: Text to judge.
        client: Gemini client.
        model: Text model name.

    Returns:
        Allowed result for {"safe": true}; blocked with 'ai_flagged' for
        {"safe": false}; blocked with 'ai_moderation_failed' on any failure.
    """
    try:
        response = await client.generate_content(
            model,
            [{"text": ai_moderation_prompt(content)}],
            {"temperature": AI_MODERATION_TEMPERATURE, "candidateCount": 1},
        )
        text = extract_text(response)
        if not text:
            raise ValueError("empty moderation verdict")
        verdict = json.loads(strip_code_fences(text))
        if not isinstance(verdict, dict) or not isinstance(verdict.get("safe"), bool):
            raise ValueError("moderation verdict lacks a boolean 'safe'")
    except Exception as e:
        logger.warning(f"AI moderation unavailable: {e}")
        return moderation_unavailable()

    reason = str(verdict.get("reason") or "no reason given")
    severity = _parse_severity(verdict.get("severity"))

    if verdict["safe"]:
        return ModerationResult(
            allowed=True,
            flags=[],
            action=ModerationAction.ALLOWED,
            severity=severity,
            message="Content approved by AI moderation",
        )

    return ModerationResult(
        allowed=False,
        flags=[AI_FLAGGED_FLAG],
        action=ModerationAction.BLOCKED,
        severity=severity,
        message=f"AI moderation failed: {reason}",
    )
