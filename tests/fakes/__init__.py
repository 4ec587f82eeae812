"""Shared test doubles: re-export memory backends plus recording collaborators."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from supportflow.models.record import SentimentResult
from supportflow.persistence.memory_backend import MemoryDirectory, MemoryRecordStore

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Settable clock; ``epoch()`` for the broker, ``__call__`` for datetimes."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def epoch(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingTransport:
    """INotificationTransport that remembers every send."""

    def __init__(self, deliver: bool = True) -> None:
        self.deliver = deliver
        self.sent: list[tuple[str | None, dict[str, Any]]] = []

    def send(self, recipient: str | None, data: dict[str, Any]) -> bool:
        self.sent.append((recipient, data))
        return self.deliver


class InterleavingRecordStore(MemoryRecordStore):
    """MemoryRecordStore that runs queued callbacks just before the next conditional patch.

    Lets a test slip another writer in between a read and the write based on it.
    """

    def __init__(self) -> None:
        super().__init__()
        self.interleaved: list[Callable[[InterleavingRecordStore], None]] = []

    def patch(self, record_id, fields, history=(), expected_version=None):
        if expected_version is not None and self.interleaved:
            self.interleaved.pop(0)(self)
        return super().patch(record_id, fields, history, expected_version)


class FixedScorer:
    """ISentimentScorer returning a fixed score, with a deliberately wrong label."""

    def __init__(self, score: float, label: str = "neutral") -> None:
        self._score = score
        self._label = label

    def score(self, text: str) -> SentimentResult:
        return SentimentResult(score=self._score, comparative=0.0, label=self._label, tokens=[])


__all__ = [
    "NOW",
    "Clock",
    "FixedScorer",
    "InterleavingRecordStore",
    "MemoryDirectory",
    "MemoryRecordStore",
    "RecordingTransport",
]
