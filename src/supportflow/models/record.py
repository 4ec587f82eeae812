"""Record (support query) models and the ingestion payload."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Channel(StrEnum):
    EMAIL = "email"
    SOCIAL_MEDIA = "social_media"
    CHAT = "chat"
    COMMUNITY = "community"
    PHONE = "phone"


class RecordStatus(StrEnum):
    NEW = "new"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"


class PriorityLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Tag(StrEnum):
    QUESTION = "question"
    REQUEST = "request"
    COMPLAINT = "complaint"
    COMPLIMENT = "compliment"
    FEEDBACK = "feedback"
    TECHNICAL_ISSUE = "technical_issue"
    BILLING = "billing"
    OTHER = "other"


TERMINAL_STATUSES = frozenset({RecordStatus.RESOLVED, RecordStatus.CLOSED})
OPEN_STATUSES = (RecordStatus.NEW, RecordStatus.ASSIGNED, RecordStatus.IN_PROGRESS)
WORKLOAD_STATUSES = (RecordStatus.ASSIGNED, RecordStatus.IN_PROGRESS)


class HistoryEntry(BaseModel):
    """One append-only audit entry. ``performed_by`` None means the system."""

    action: str
    performed_by: Optional[str] = None
    notes: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class SentimentResult(BaseModel):
    score: float = 0.0
    comparative: float = 0.0
    label: str = "neutral"
    tokens: list[str] = Field(default_factory=list)


class SpamResult(BaseModel):
    score: int = 0
    is_spam: bool = False
    confidence: float = 0.0


class Record(BaseModel):
    """A single inbound support item tracked through the pipeline."""

    # --- Identity ---
    id: str = Field(default_factory=lambda: uuid4().hex)
    channel: Channel
    received_at: datetime = Field(default_factory=utcnow)

    # --- Content ---
    subject: str = ""
    content: str
    sender_name: str = ""
    sender_email: Optional[str] = None
    sender_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    # --- Classification ---
    tags: list[str] = Field(default_factory=list)
    primary_tag: Optional[str] = None
    sentiment: Optional[SentimentResult] = None
    spam: Optional[SpamResult] = None
    priority: PriorityLevel = PriorityLevel.MEDIUM
    priority_score: int = 50
    completed_stages: set[str] = Field(default_factory=set)

    # --- Routing ---
    assigned_team: Optional[str] = None
    assigned_to: Optional[str] = None
    status: RecordStatus = RecordStatus.NEW
    is_escalated: bool = False
    escalated_at: Optional[datetime] = None
    escalation_reason: str = ""

    # --- Timing (minutes) ---
    first_response_at: Optional[datetime] = None
    response_time: Optional[int] = None
    resolution_time: Optional[int] = None

    history: list[HistoryEntry] = Field(default_factory=list)
    version: int = 0

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("priority_score")
    @classmethod
    def _clamp_score(cls, value: int) -> int:
        return max(0, min(100, value))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class IngestPayload(BaseModel):
    """Normalized payload handed over by the channel integrations."""

    subject: str = ""
    content: str
    channel: Channel
    sender_name: str = ""
    sender_email: Optional[str] = None
    sender_id: Optional[str] = None
    received_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def _content_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("content must not be empty")
        return value
