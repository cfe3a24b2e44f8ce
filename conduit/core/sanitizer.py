"""Inbound prompt screening.

User turns are cleaned (control characters stripped, whitespace trimmed) and
rejected when empty or when they look like an attempt to override the system
prompt. Other roles are cleaned but never rejected.
"""

from __future__ import annotations

import re

from conduit.utils.logging import get_logger

log = get_logger(__name__)

# C0 controls and DEL, keeping tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_TARGET = r"(?:instructions?|prompts?|commands?)"

INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        rf"ignore\s+(?:previous|above|all)\s+{_TARGET}",
        rf"forget\s+(?:previous|above|all)\s+{_TARGET}",
        rf"disregard\s+(?:previous|above|all)\s+{_TARGET}",
        rf"override\s+(?:previous|above|all)\s+{_TARGET}",
        r"system\s*:\s*(?:ignore|forget)",
        r"you\s+are\s+now",
        r"act\s+as\s+if",
        r"pretend\s+to\s+be",
        r"roleplay\s+as",
        r"you\s+must\s+always",
        r"(?:never|always)\s+(?:say|tell|mention)",
        r"\[INST\]",
        r"\[SYSTEM\]",
        r"<\|(?:system|user|assistant)\|>",
    )
)

SUSPICIOUS_KEYWORDS = (
    "jailbreak",
    "bypass",
    "hack",
    "exploit",
    "vulnerability",
    "admin",
    "root",
    "sudo",
    "password",
    "token",
    "api key",
    "secret",
)

# One keyword is ordinary conversation; two or more together get flagged
SUSPICIOUS_THRESHOLD = 2


def sanitize_input(text: str) -> str:
    return _CONTROL_CHARS.sub("", text).strip()


def contains_injection(text: str) -> bool:
    if any(p.search(text) for p in INJECTION_PATTERNS):
        return True
    lowered = text.lower()
    hits = sum(1 for k in SUSPICIOUS_KEYWORDS if k in lowered)
    return hits >= SUSPICIOUS_THRESHOLD


def screen_message(text: str) -> str:
    """Return the cleaned user message, or raise ValueError if it is refused."""
    cleaned = sanitize_input(text)
    if not cleaned:
        raise ValueError("Message cannot be empty")
    if contains_injection(cleaned):
        log.warning("prompt_rejected", length=len(cleaned))
        raise ValueError("Message was rejected by the content filter")
    return cleaned
