"""Heuristic spam detection."""

from __future__ import annotations

import re

from supportflow.models.record import SpamResult

SPAM_KEYWORDS: tuple[str, ...] = (
    "click here",
    "limited time",
    "act now",
    "urgent action required",
    "congratulations",
    "you have won",
    "free money",
    "nigerian prince",
    "viagra",
    "cialis",
    "weight loss",
    "get rich quick",
)

SPAM_THRESHOLD = 3
CAPS_RATIO_LIMIT = 0.5
CAPS_MIN_LENGTH = 20
LINK_COUNT_LIMIT = 3

_UPPER = re.compile(r"[A-Z]")
_LINK = re.compile(r"http", re.IGNORECASE)


def detect_spam(content: str) -> SpamResult:
    """Score ``content``; spam when the cumulative score reaches 3."""
    lowered = content.lower()
    score = sum(1 for keyword in SPAM_KEYWORDS if keyword in lowered)

    if content:
        caps_ratio = len(_UPPER.findall(content)) / len(content)
        if caps_ratio > CAPS_RATIO_LIMIT and len(content) > CAPS_MIN_LENGTH:
            score += 2

    if len(_LINK.findall(content)) > LINK_COUNT_LIMIT:
        score += 2

    return SpamResult(
        score=score,
        is_spam=score >= SPAM_THRESHOLD,
        confidence=min(score / 5, 1.0),
    )
