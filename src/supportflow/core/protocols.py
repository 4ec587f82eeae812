"""Protocol interfaces for the pipeline's collaborators.

All inter-layer communication uses these Protocols: structural typing,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from supportflow.models.directory import Team, User
from supportflow.models.job import BrokerHealth, Job, JobHandle, Stage
from supportflow.models.record import HistoryEntry, Record, SentimentResult

JobHandler = Callable[[Job], Any]


# ---------------------------------------------------------------------------
# Job Broker
# ---------------------------------------------------------------------------

@runtime_checkable
class IJobBroker(Protocol):
    """Best-effort job queue with per-stage priority, retry and backoff."""

    def enqueue(
        self, stage: Stage, data: dict[str, Any], priority: int = 4, name: Optional[str] = None
    ) -> JobHandle: ...

    def subscribe(self, stage: Stage, handler: JobHandler) -> None: ...

    def process_next(self, stage: Stage) -> bool: ...

    def health(self) -> BrokerHealth: ...

    def stats(self) -> dict[str, dict[str, int]]: ...


# ---------------------------------------------------------------------------
# Persistence: Records
# ---------------------------------------------------------------------------

@runtime_checkable
class IRecordStore(Protocol):
    """Record persistence with field-scoped patches, never whole-document writes."""

    def create(self, record: Record) -> None: ...

    def get(self, record_id: str) -> Record | None: ...

    def patch(
        self,
        record_id: str,
        fields: dict[str, Any],
        history: Sequence[HistoryEntry] = (),
        expected_version: int | None = None,
    ) -> Record:
        """Apply ``fields`` and append ``history``.

        With ``expected_version`` the write only lands if the stored record is
        still at that version; otherwise ConcurrentUpdate is raised.
        """
        ...

    def add_completed_stage(self, record_id: str, stage: str) -> tuple[bool, set[str]]: ...

    def flag_escalated(
        self, record_id: str, escalated_at: datetime, reason: str, entry: HistoryEntry
    ) -> bool: ...

    def find(
        self, statuses: Iterable[str] | None = None, is_escalated: bool | None = None
    ) -> list[Record]: ...

    def count(
        self,
        *,
        assigned_team: str | None = None,
        assigned_to: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> int: ...


# ---------------------------------------------------------------------------
# Persistence: Teams and Users
# ---------------------------------------------------------------------------

@runtime_checkable
class IDirectory(Protocol):
    """Team/user reference data. The core only reads it and bumps counters."""

    def list_teams(self, active_only: bool = True) -> list[Team]: ...

    def get_team(self, team_id: str) -> Team | None: ...

    def list_users(self, team_id: str, active_only: bool = True) -> list[User]: ...

    def get_user(self, user_id: str) -> User | None: ...

    def save_team(self, team: Team) -> None: ...

    def save_user(self, user: User) -> None: ...

    def increment_team_stat(self, team_id: str, stat: str, amount: int = 1) -> None: ...

    def increment_user_stat(self, user_id: str, stat: str, amount: int = 1) -> None: ...


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

@runtime_checkable
class ISentimentScorer(Protocol):
    """Pure text -> sentiment scorer."""

    def score(self, text: str) -> SentimentResult: ...


@runtime_checkable
class INotificationTransport(Protocol):
    """Delivers one notification. Returns False when delivery was not possible."""

    def send(self, recipient: str | None, data: dict[str, Any]) -> bool: ...
