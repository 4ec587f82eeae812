"""Priority scoring: keywords, primary tag, channel and complaint bonus."""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Optional

from pydantic import BaseModel

from supportflow.models.record import Channel, PriorityLevel, Tag

BASE_SCORE = 50

PRIORITY_KEYWORDS: dict[PriorityLevel, tuple[int, tuple[str, ...]]] = {
    PriorityLevel.URGENT: (
        10,
        ("urgent", "asap", "immediately", "critical", "emergency", "as soon as possible",
         "right now"),
    ),
    PriorityLevel.HIGH: (7, ("important", "soon", "quickly", "fast", "priority", "significant")),
    PriorityLevel.MEDIUM: (4, ("normal", "regular", "standard")),
    PriorityLevel.LOW: (2, ("whenever", "no rush", "low priority", "not urgent")),
}

TAG_PRIORITY_MAP: dict[str, PriorityLevel] = {
    Tag.COMPLAINT: PriorityLevel.HIGH,
    Tag.TECHNICAL_ISSUE: PriorityLevel.HIGH,
    Tag.BILLING: PriorityLevel.HIGH,
    Tag.QUESTION: PriorityLevel.MEDIUM,
    Tag.REQUEST: PriorityLevel.MEDIUM,
    Tag.FEEDBACK: PriorityLevel.LOW,
    Tag.COMPLIMENT: PriorityLevel.LOW,
    Tag.OTHER: PriorityLevel.MEDIUM,
}

TAG_ADJUSTMENTS: dict[PriorityLevel, int] = {
    PriorityLevel.URGENT: 20,
    PriorityLevel.HIGH: 10,
    PriorityLevel.LOW: -10,
}

CHANNEL_WEIGHTS: dict[str, float] = {
    Channel.PHONE: 1.5,
    Channel.CHAT: 1.3,
    Channel.EMAIL: 1.0,
    Channel.SOCIAL_MEDIA: 1.2,
    Channel.COMMUNITY: 0.8,
}

COMPLAINT_BONUS = 15

# Checked top-down; first threshold reached wins.
LEVEL_THRESHOLDS: tuple[tuple[int, PriorityLevel], ...] = (
    (80, PriorityLevel.URGENT),
    (60, PriorityLevel.HIGH),
    (30, PriorityLevel.MEDIUM),
)


class PriorityResult(BaseModel):
    priority: PriorityLevel
    priority_score: int


def priority_level_for(score: int) -> PriorityLevel:
    """Threshold function from a 0-100 score to a priority level."""
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return PriorityLevel.LOW


def detect_priority(
    subject: str,
    content: str,
    channel: Optional[str],
    tags: Iterable[str] = (),
    primary_tag: Optional[str] = None,
) -> PriorityResult:
    text = f"{subject} {content}".lower()
    score: float = BASE_SCORE

    for weight, keywords in PRIORITY_KEYWORDS.values():
        for keyword in keywords:
            if keyword in text:
                score += weight

    if primary_tag is not None and primary_tag in TAG_PRIORITY_MAP:
        score += TAG_ADJUSTMENTS.get(TAG_PRIORITY_MAP[primary_tag], 0)

    if channel is not None and channel in CHANNEL_WEIGHTS:
        score *= CHANNEL_WEIGHTS[channel]

    if Tag.COMPLAINT in set(tags):
        score += COMPLAINT_BONUS

    score = max(0.0, min(100.0, score))
    # Half-up rounding; the level is derived from the stored integer score.
    rounded = int(math.floor(score + 0.5))
    return PriorityResult(priority=priority_level_for(rounded), priority_score=rounded)
