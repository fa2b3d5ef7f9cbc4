"""
Keyword, pattern and phrase based content moderation.

Every check runs and every finding is kept, in this order:

1. High-risk phrases force severity high.
2. Banned keywords raise severity to at least medium.
3. Suspicious patterns raise severity to at least medium.
4. Structural checks (length, emptiness, symbol ratio, repeated characters)
   add flags without touching severity.

Decision:
    high-risk phrase or severity high  -> blocked
    severity medium or 3+ flags        -> blocked
    any other flag                     -> flagged
    no flags                           -> allowed

Keyword and phrase matching is plain case-insensitive substring matching, so
a keyword inside a longer word ("war" in "award") also matches.
"""

import base64
import binascii
import logging
import re
from typing import List, Optional, Pattern, Tuple

from src.generation.log import GenerationLog
from src.types.generation import ALLOWED_IMAGE_MIME_TYPES, MAX_IMAGE_UPLOAD_BYTES
from src.types.moderation import ModerationAction, ModerationResult, Severity

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1000
SPECIAL_CHARACTER_RATIO = 0.3

BANNED_KEYWORDS: Tuple[str, ...] = (
    # Adult content
    "nude", "naked", "sex", "porn", "pornographic", "explicit", "adult",
    "erotic", "sexual", "topless", "bottomless", "underwear", "lingerie",
    "bikini", "swimsuit", "revealing", "seductive", "sensual", "intimate",
    "provocative", "suggestive",
    # Violence
    "violence", "violent", "blood", "bloody", "gore", "gory", "weapon",
    "weapons", "gun", "guns", "rifle", "pistol", "knife", "knives", "sword",
    "blade", "kill", "killing", "murder", "death", "dead", "corpse",
    "torture", "fight", "fighting", "war", "battle", "combat", "attack",
    "assault",
    # Hate speech
    "hate", "hatred", "racist", "racism", "nazi", "fascist", "terrorist",
    "terrorism", "supremacist", "extremist", "radical", "bigot",
    "discrimination",
    # Drugs
    "drug", "drugs", "cocaine", "heroin", "marijuana", "cannabis", "weed",
    "meth", "addiction", "overdose", "substance abuse",
    # Self-harm
    "suicide", "self-harm", "cutting", "depression", "suicidal",
    # Minors
    "child", "children", "kid", "kids", "minor", "minors", "baby", "infant",
    "school", "playground", "daycare",
)

SUSPICIOUS_PATTERNS: List[str] = [
    # Adult content
    r"\b(nude|naked|sex|porn|explicit|adult|erotic)\b",
    r"\b(topless|bottomless|revealing|seductive|provocative)\b",
    # Violence
    r"\b(violence|blood|gore|weapon|gun|knife|kill|murder|death)\b",
    r"\b(fight|war|battle|combat|attack|assault|torture)\b",
    # Hate speech
    r"\b(hate|racist|nazi|terrorist|supremacist|extremist)\b",
    # Drugs
    r"\b(drug|cocaine|heroin|marijuana|cannabis|weed|meth)\b",
    # Self-harm
    r"\b(suicide|self-harm|cutting|suicidal)\b",
    # Minors combined with sexual terms
    r"\b(child|children|kid|kids|minor|baby|infant)\s+(nude|naked|sexual|inappropriate)",
    r"\b(young|teen|teenage)\s+(girl|boy|woman|man)\s+(nude|naked|sexy|hot)",
    # Minors' places combined with violent terms
    r"\b(school|classroom|playground)\s+(violence|fight|weapon|gun)",
]

COMPILED_SUSPICIOUS_PATTERNS: List[Pattern] = [
    re.compile(pattern, re.IGNORECASE) for pattern in SUSPICIOUS_PATTERNS
]

HIGH_RISK_PHRASES: Tuple[str, ...] = (
    "child pornography", "child abuse", "sexual violence", "rape", "pedophile",
    "terrorist attack", "bomb making", "build a bomb", "make a bomb",
    "mass shooting", "suicide bomber", "drug dealing", "human trafficking",
    "slavery",
)

SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
REPEATED_CHARACTER = re.compile(r"(.)\1{10,}", re.DOTALL)

MESSAGE_BLOCKED_HIGH = (
    "Content blocked due to policy violations. Please ensure your prompts are "
    "appropriate and follow our community guidelines."
)
MESSAGE_BLOCKED_MEDIUM = (
    "Content blocked due to inappropriate content. Please revise your prompt "
    "to comply with our content policy."
)
MESSAGE_FLAGGED = "Content flagged for review but allowed to proceed."
MESSAGE_ALLOWED = "Content approved"

_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


def _at_least(current: Severity, floor: Severity) -> Severity:
    return current if _SEVERITY_RANK[current] >= _SEVERITY_RANK[floor] else floor


def classify(content: str) -> ModerationResult:
    """
    Classify text without recording anything.

    Args:
        content: Prompt or other user-supplied text.

    Returns:
        ModerationResult with every finding in ``flags``.
    """
    content = content or ""
    lowered = content.lower()
    flags: List[str] = []
    severity = Severity.LOW
    has_high_risk = False

    for phrase in HIGH_RISK_PHRASES:
        if phrase in lowered:
            flags.append(f"high_risk_phrase:{phrase}")
            severity = Severity.HIGH
            has_high_risk = True

    for keyword in BANNED_KEYWORDS:
        if keyword in lowered:
            flags.append(f"banned_keyword:{keyword}")
            severity = _at_least(severity, Severity.MEDIUM)

    for pattern in COMPILED_SUSPICIOUS_PATTERNS:
        if pattern.search(content):
            flags.append(f"suspicious_pattern:{pattern.pattern}")
            severity = _at_least(severity, Severity.MEDIUM)

    if len(content) > MAX_CONTENT_LENGTH:
        flags.append("content_too_long")

    if not content.strip():
        flags.append("empty_content")

    if len(SPECIAL_CHARACTERS.findall(content)) > len(content) * SPECIAL_CHARACTER_RATIO:
        flags.append("excessive_special_characters")

    if REPEATED_CHARACTER.search(content):
        flags.append("repeated_character_spam")

    if has_high_risk or severity == Severity.HIGH:
        action, message = ModerationAction.BLOCKED, MESSAGE_BLOCKED_HIGH
    elif severity == Severity.MEDIUM or len(flags) >= 3:
        action, message = ModerationAction.BLOCKED, MESSAGE_BLOCKED_MEDIUM
    elif flags:
        action, message = ModerationAction.FLAGGED, MESSAGE_FLAGGED
    else:
        action, message = ModerationAction.ALLOWED, MESSAGE_ALLOWED

    return ModerationResult(
        allowed=action != ModerationAction.BLOCKED,
        flags=flags,
        action=action,
        severity=severity,
        message=message,
    )


def _split_data_uri(data: str) -> Tuple[Optional[str], str]:
    """Split 'data:<mime>;base64,<payload>' into (mime, payload)."""
    if data.startswith("data:") and "," in data:
        header, payload = data.split(",", 1)
        mime = header[len("data:"):].split(";", 1)[0] or None
        return mime, payload
    return None, data


def validate_image_upload(data: str, mime_type: Optional[str] = None) -> ModerationResult:
    """
    Check an uploaded image's size and type.

    Args:
        data: Base64 payload or data URI.
        mime_type: Declared MIME type; a data URI's own type wins when present.

    Returns:
        Blocked result with 'file_too_large' and/or 'invalid_file_type' flags,
        or an allowed result.
    """
    uri_mime, payload = _split_data_uri(data or "")
    mime = (uri_mime or mime_type or "").lower()
    flags: List[str] = []

    size_in_bytes = (len(payload) * 3) // 4
    if size_in_bytes > MAX_IMAGE_UPLOAD_BYTES:
        flags.append("file_too_large")

    if mime not in ALLOWED_IMAGE_MIME_TYPES:
        flags.append("invalid_file_type")
    elif not flags:
        try:
            base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            flags.append("invalid_file_type")

    if flags:
        return ModerationResult(
            allowed=False,
            flags=flags,
            action=ModerationAction.BLOCKED,
            severity=Severity.LOW,
            message="Invalid image file",
        )
    return ModerationResult(
        allowed=True,
        flags=[],
        action=ModerationAction.ALLOWED,
        severity=Severity.LOW,
        message="Image validation passed",
    )


class ContentModerator:
    """
    Moderation engine bound to the audit log.

    Args:
        log: Where moderation decisions are recorded. Optional so the
            classifier can run standalone.
    """

    def __init__(self, log: Optional[GenerationLog] = None):
        self.log = log

    async def moderate(
        self,
        content: str,
        user_id: str,
        content_type: str = "prompt",
    ) -> ModerationResult:
        """
        Classify ``content`` and record the decision.

        Recording is best-effort; the verdict is returned even if the log
        write fails.
        """
        result = classify(content)

        if self.log is not None:
            await self.log.log_moderation(
                user_id=user_id,
                content=content or "",
                content_type=content_type,
                flags=result.flags,
                action=result.action.value,
            )

        if result.action != ModerationAction.ALLOWED:
            logger.info(
                f"Content {result.action.value} for user {user_id[:8]}... "
                f"(severity={result.severity.value}, flags={len(result.flags)})"
            )
        return result
