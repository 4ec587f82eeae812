"""Stage queue, job and notification payload models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from supportflow.models.record import utcnow


class Stage(StrEnum):
    QUERY_PROCESSING = "query-processing"
    TAGGING = "tagging"
    SENTIMENT = "sentiment"
    PRIORITY = "priority"
    SPAM = "spam-detection"
    NOTIFICATION = "notification"


CLASSIFICATION_STAGES: tuple[Stage, ...] = (
    Stage.TAGGING,
    Stage.SENTIMENT,
    Stage.PRIORITY,
    Stage.SPAM,
)

# Higher number dequeues first.
PRIORITY_VALUES = {"urgent": 10, "high": 7, "medium": 4, "low": 1}
DEFAULT_PRIORITY_VALUE = 4


def priority_value(level: Optional[str]) -> int:
    """Map a record priority level to its queue priority; unknown -> medium."""
    if level is None:
        return DEFAULT_PRIORITY_VALUE
    return PRIORITY_VALUES.get(str(level), DEFAULT_PRIORITY_VALUE)


class BrokerHealth(StrEnum):
    UP = "up"
    DOWN = "down"


class JobState(StrEnum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """Ephemeral queue payload."""

    id: str
    stage: Stage
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY_VALUE
    attempts_made: int = 0
    max_attempts: int = 3
    delay: float = 0.0  # seconds of scheduled backoff
    state: JobState = JobState.WAITING
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    failed_reason: str = ""
    return_value: Any = None


class JobHandle(BaseModel):
    """What a caller gets back from enqueue."""

    id: str
    stage: Stage
    name: str
    priority: int


class NotificationType(StrEnum):
    EMAIL = "email"
    SLACK = "slack"
    PUSH = "push"


class Notification(BaseModel):
    """Payload of a notification-stage job."""

    type: NotificationType
    recipient: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
