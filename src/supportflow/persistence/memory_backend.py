"""In-memory backends: dict-backed record store and directory.

Used for local development and unit tests. Every mutation happens under a
lock and touches only the named fields, so concurrent workers patching
different sub-fields never clobber each other.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from supportflow.core.exceptions import ConcurrentUpdate, RecordNotFound
from supportflow.models.directory import Team, User
from supportflow.models.record import OPEN_STATUSES, HistoryEntry, Record, RecordStatus


class MemoryRecordStore:
    """Dict-backed IRecordStore."""

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._lock = threading.RLock()

    def create(self, record: Record) -> None:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    def get(self, record_id: str) -> Record | None:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record is not None else None

    def patch(
        self,
        record_id: str,
        fields: dict[str, Any],
        history: Sequence[HistoryEntry] = (),
        expected_version: int | None = None,
    ) -> Record:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise RecordNotFound(record_id)
            if expected_version is not None and current.version != expected_version:
                raise ConcurrentUpdate(record_id, expected_version)
            data = current.model_dump()
            data.update(fields)
            data["history"] = [*data["history"], *(e.model_dump() for e in history)]
            data["version"] = current.version + 1
            updated = Record.model_validate(data)
            self._records[record_id] = updated
            return updated.model_copy(deep=True)

    def add_completed_stage(self, record_id: str, stage: str) -> tuple[bool, set[str]]:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise RecordNotFound(record_id)
            added = stage not in current.completed_stages
            current.completed_stages.add(stage)
            return added, set(current.completed_stages)

    def flag_escalated(
        self, record_id: str, escalated_at: datetime, reason: str, entry: HistoryEntry
    ) -> bool:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise RecordNotFound(record_id)
            if current.is_escalated or current.status not in OPEN_STATUSES:
                return False
            self.patch(
                record_id,
                {
                    "is_escalated": True,
                    "escalated_at": escalated_at,
                    "escalation_reason": reason,
                    "status": RecordStatus.ESCALATED,
                },
                [entry],
            )
            return True

    def find(
        self, statuses: Iterable[str] | None = None, is_escalated: bool | None = None
    ) -> list[Record]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if (wanted is None or record.status in wanted)
                and (is_escalated is None or record.is_escalated == is_escalated)
            ]

    def count(
        self,
        *,
        assigned_team: str | None = None,
        assigned_to: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> int:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return sum(
                1
                for record in self._records.values()
                if (assigned_team is None or record.assigned_team == assigned_team)
                and (assigned_to is None or record.assigned_to == assigned_to)
                and (wanted is None or record.status in wanted)
            )


class MemoryDirectory:
    """Dict-backed IDirectory. Teams and users keep insertion order."""

    def __init__(self) -> None:
        self._teams: dict[str, Team] = {}
        self._users: dict[str, User] = {}
        self._lock = threading.RLock()

    def list_teams(self, active_only: bool = True) -> list[Team]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._teams.values() if t.is_active or not active_only]

    def get_team(self, team_id: str) -> Team | None:
        with self._lock:
            team = self._teams.get(team_id)
            return team.model_copy(deep=True) if team is not None else None

    def list_users(self, team_id: str, active_only: bool = True) -> list[User]:
        with self._lock:
            return [
                u.model_copy(deep=True)
                for u in self._users.values()
                if u.team == team_id and (u.is_active or not active_only)
            ]

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user is not None else None

    def save_team(self, team: Team) -> None:
        with self._lock:
            self._teams[team.id] = team.model_copy(deep=True)

    def save_user(self, user: User) -> None:
        with self._lock:
            self._users[user.id] = user.model_copy(deep=True)

    def increment_team_stat(self, team_id: str, stat: str, amount: int = 1) -> None:
        with self._lock:
            team = self._teams.get(team_id)
            if team is not None:
                setattr(team.stats, stat, getattr(team.stats, stat) + amount)

    def increment_user_stat(self, user_id: str, stat: str, amount: int = 1) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                setattr(user.stats, stat, getattr(user.stats, stat) + amount)
