"""Record status state machine and timing stamps.

new -> assigned -> in_progress -> resolved -> closed, with ``escalated``
reachable only from the open statuses (and only via the escalation
sweep). Closed is final.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from supportflow.core.exceptions import InvalidTransition
from supportflow.models.record import HistoryEntry, Record, RecordStatus

S = RecordStatus

# Transitions an external agent action may request.
ALLOWED_TRANSITIONS: dict[RecordStatus, frozenset[RecordStatus]] = {
    S.NEW: frozenset({S.ASSIGNED, S.IN_PROGRESS, S.CLOSED}),
    S.ASSIGNED: frozenset({S.IN_PROGRESS, S.CLOSED}),
    S.IN_PROGRESS: frozenset({S.RESOLVED, S.CLOSED}),
    S.ESCALATED: frozenset({S.ASSIGNED, S.IN_PROGRESS, S.RESOLVED, S.CLOSED}),
    S.RESOLVED: frozenset({S.CLOSED, S.IN_PROGRESS}),
    S.CLOSED: frozenset(),
}


def minutes_between(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds() / 60)


def ensure_transition(current: RecordStatus, requested: RecordStatus) -> None:
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current, requested)


def status_update(
    record: Record,
    new_status: RecordStatus,
    actor: Optional[str],
    notes: Optional[str],
    now: datetime,
) -> tuple[dict[str, Any], HistoryEntry]:
    """Return the field patch and history entry for an external status change.

    Entering in_progress for the first time stamps the first response and
    its response time; entering resolved for the first time stamps the
    resolution time. Both are measured in whole minutes since receipt.
    """
    new_status = RecordStatus(new_status)
    ensure_transition(record.status, new_status)

    fields: dict[str, Any] = {"status": new_status}
    if new_status is S.IN_PROGRESS and record.first_response_at is None:
        fields["first_response_at"] = now
        fields["response_time"] = minutes_between(record.received_at, now)
    if new_status is S.RESOLVED and record.resolution_time is None:
        fields["resolution_time"] = minutes_between(record.received_at, now)

    entry = HistoryEntry(
        action=f"Status changed to {new_status}",
        performed_by=actor,
        notes=notes or "",
        timestamp=now,
    )
    return fields, entry
