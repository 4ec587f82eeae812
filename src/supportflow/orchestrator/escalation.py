"""EscalationEngine: promotes overdue open records and notifies their team."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Optional

from supportflow.core.protocols import IDirectory, IRecordStore
from supportflow.models.directory import Team
from supportflow.models.record import OPEN_STATUSES, HistoryEntry, Record, utcnow

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: dict[str, float] = {"urgent": 1, "high": 4, "medium": 12, "low": 24}
DEFAULT_THRESHOLD_HOURS = 24

EscalationNotifier = Callable[[Record, Optional[Team]], None]


def hours_since(received_at: datetime, now: datetime) -> float:
    return (now - received_at).total_seconds() / 3600


class EscalationEngine:
    """Periodic sweep over open, non-escalated records.

    Escalation is monotonic: the store flags a record with an atomic
    check-and-set and this engine never clears the flag.
    """

    def __init__(
        self,
        records: IRecordStore,
        directory: IDirectory,
        *,
        notifier: EscalationNotifier | None = None,
        thresholds: Mapping[str, float] | None = None,
        default_threshold: float = DEFAULT_THRESHOLD_HOURS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._records = records
        self._directory = directory
        self._notifier = notifier
        self._thresholds = dict(thresholds if thresholds is not None else DEFAULT_THRESHOLDS)
        self._default_threshold = default_threshold
        self._clock = clock
        self._sweep_lock = threading.Lock()

    def threshold_for(self, priority: str) -> float:
        return self._thresholds.get(str(priority), self._default_threshold)

    def should_escalate(self, record: Record, now: datetime | None = None) -> bool:
        if record.is_terminal or record.is_escalated:
            return False
        if record.status not in OPEN_STATUSES:
            return False
        now = now or self._clock()
        return hours_since(record.received_at, now) >= self.threshold_for(record.priority)

    def escalate(self, record: Record, now: datetime | None = None) -> bool:
        """Flag, stamp and notify. False when another sweep got there first."""
        now = now or self._clock()
        reason = f"Auto-escalated due to {record.priority} priority and response time"
        entry = HistoryEntry(action="Query escalated", notes=reason, timestamp=now)
        if not self._records.flag_escalated(record.id, now, reason, entry):
            return False

        logger.warning("Record %s escalated: %s", record.id, reason)
        if self._notifier is not None:
            escalated = self._records.get(record.id) or record
            team = self._directory.get_team(record.assigned_team) if record.assigned_team else None
            try:
                self._notifier(escalated, team)
            except Exception:
                logger.exception("Escalation notice for record %s not queued", record.id)
        return True

    def run_sweep(self) -> list[str]:
        """Escalate every overdue record; returns the escalated ids.

        Overlapping sweeps in one process are skipped. A failure on one
        record is logged and the sweep moves on.
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.info("Escalation sweep already running; skipped")
            return []
        try:
            now = self._clock()
            escalated: list[str] = []
            for record in self._records.find(statuses=OPEN_STATUSES, is_escalated=False):
                try:
                    if self.should_escalate(record, now) and self.escalate(record, now):
                        escalated.append(record.id)
                except Exception:
                    logger.exception("Escalation failed for record %s", record.id)
            if escalated:
                logger.info("Escalation sweep escalated %d record(s)", len(escalated))
            return escalated
        finally:
            self._sweep_lock.release()
