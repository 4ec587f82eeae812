"""Routing & assignment: best team by capability, best user by workload."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from supportflow.core.exceptions import ConcurrentUpdate, InvalidTransition, RecordNotFound
from supportflow.core.protocols import IDirectory, IRecordStore
from supportflow.models.directory import Team, User, UserRole
from supportflow.models.record import WORKLOAD_STATUSES, HistoryEntry, Record, RecordStatus

logger = logging.getLogger(__name__)

TAG_MATCH_SCORE = 10
CHANNEL_MATCH_SCORE = 8
PRIORITY_MATCH_SCORE = 5
TEAM_WORKLOAD_PENALTY = 0.5
USER_WORKLOAD_PENALTY = 10
RESPONSE_TIME_FACTOR = 100
ROLE_BONUS: dict[str, int] = {UserRole.SPECIALIST: 5, UserRole.MANAGER: 3}

# tries at a conditional record write before ConcurrentUpdate propagates
MAX_WRITE_ATTEMPTS = 3


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of one routing call. ``team``/``user`` are None when unassigned."""

    record: Record
    team: Optional[Team] = None
    user: Optional[User] = None

    @property
    def assigned(self) -> bool:
        return self.team is not None


class RoutingEngine:
    """Scores teams and users from current workload. Nothing is memoized."""

    def __init__(self, records: IRecordStore, directory: IDirectory) -> None:
        self._records = records
        self._directory = directory

    def _load(self, record_id: str) -> Record:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    def find_best_team(self, record: Record) -> Team | None:
        """Highest-scoring active team; the first team reaching the max wins ties."""
        best_team: Team | None = None
        best_score: float = 0
        for team in self._directory.list_teams(active_only=True):
            if not team.is_active:
                continue
            score: float = 0
            if record.primary_tag and record.primary_tag in team.handles_tags:
                score += TAG_MATCH_SCORE
            if record.channel in team.handles_channels:
                score += CHANNEL_MATCH_SCORE
            if record.priority in team.handles_priorities:
                score += PRIORITY_MATCH_SCORE
            open_count = self._records.count(assigned_team=team.id, statuses=WORKLOAD_STATUSES)
            score -= open_count * TEAM_WORKLOAD_PENALTY

            if score > best_score:
                best_score = score
                best_team = team
        return best_team

    def find_best_user(self, team: Team, record: Record) -> User | None:
        """Least-loaded, fastest active member of ``team``; None for an empty roster."""
        users = [
            u for u in self._directory.list_users(team.id, active_only=True)
            if u.is_active and u.team == team.id
        ]
        if not users:
            return None

        best_user: User | None = None
        best_score = -math.inf
        for user in users:
            score: float = 0
            open_count = self._records.count(assigned_to=user.id, statuses=WORKLOAD_STATUSES)
            score -= open_count * USER_WORKLOAD_PENALTY
            if user.stats.average_response_time > 0:
                score += RESPONSE_TIME_FACTOR / user.stats.average_response_time
            score += ROLE_BONUS.get(user.role, 0)

            if score > best_score:
                best_score = score
                best_user = user
        return best_user or users[0]

    def auto_route_and_assign(self, record_id: str, actor: Optional[str] = None) -> RoutingDecision:
        """Re-evaluate and assign from current state. Each call may re-assign.

        The write is conditional on the record version that was scored. If
        the record changed in between (an escalation, a status change) the
        decision is recomputed from the fresh record.
        """
        for _ in range(MAX_WRITE_ATTEMPTS - 1):
            try:
                return self._route_once(self._load(record_id), actor)
            except ConcurrentUpdate:
                logger.info("Record %s changed while routing; re-evaluating", record_id)
        return self._route_once(self._load(record_id), actor)

    def _route_once(self, record: Record, actor: Optional[str]) -> RoutingDecision:
        if record.is_terminal or record.is_escalated:
            logger.info("Record %s is %s; auto-routing skipped", record.id, record.status)
            return RoutingDecision(record=record)

        team = self.find_best_team(record)
        if team is None:
            record = self._records.patch(record.id, {}, [HistoryEntry(
                action="Auto-routing attempted",
                performed_by=actor,
                notes="No suitable team found for auto-assignment",
            )], expected_version=record.version)
            logger.info("Record %s: no suitable team", record.id)
            return RoutingDecision(record=record)

        user = self.find_best_user(team, record)
        if user is None:
            record = self._records.patch(
                record.id,
                {"assigned_team": team.id, "status": RecordStatus.ASSIGNED},
                [HistoryEntry(
                    action="Assigned to team",
                    performed_by=actor,
                    notes=f"Auto-assigned to team: {team.name} (no available users)",
                )],
                expected_version=record.version,
            )
            self._directory.increment_team_stat(team.id, "total_queries")
            logger.info("Record %s assigned to team %s with no available users", record.id, team.name)
            return RoutingDecision(record=record, team=team)

        record = self._records.patch(
            record.id,
            {"assigned_team": team.id, "assigned_to": user.id, "status": RecordStatus.ASSIGNED},
            [HistoryEntry(
                action="Auto-assigned",
                performed_by=actor,
                notes=f"Auto-assigned to {user.name} in team {team.name}",
            )],
            expected_version=record.version,
        )
        self._directory.increment_user_stat(user.id, "total_assigned")
        self._directory.increment_team_stat(team.id, "total_queries")
        logger.info("Record %s assigned to %s in team %s", record.id, user.name, team.name)
        return RoutingDecision(record=record, team=team, user=user)

    def manual_assign(self, record_id: str, user_id: str, team_id: str, actor: str) -> RoutingDecision:
        """Direct assignment that bypasses scoring."""
        for _ in range(MAX_WRITE_ATTEMPTS - 1):
            try:
                return self._assign_once(self._load(record_id), user_id, team_id, actor)
            except ConcurrentUpdate:
                logger.info("Record %s changed during manual assignment; retrying", record_id)
        return self._assign_once(self._load(record_id), user_id, team_id, actor)

    def _assign_once(self, record: Record, user_id: str, team_id: str, actor: str) -> RoutingDecision:
        if record.is_terminal:
            raise InvalidTransition(record.status, RecordStatus.ASSIGNED)

        record = self._records.patch(
            record.id,
            {"assigned_team": team_id, "assigned_to": user_id, "status": RecordStatus.ASSIGNED},
            [HistoryEntry(
                action="Manually assigned",
                performed_by=actor,
                notes=f"Manually assigned by user {actor}",
            )],
            expected_version=record.version,
        )
        user = self._directory.get_user(user_id)
        if user is not None:
            self._directory.increment_user_stat(user.id, "total_assigned")
        team = self._directory.get_team(team_id)
        if team is not None:
            self._directory.increment_team_stat(team.id, "total_queries")
        return RoutingDecision(record=record, team=team, user=user)
