"""Pipeline: the dependency-injected object that owns broker, stores and engines.

It subscribes every stage worker on the broker and exposes the core
operations callers use: ingestion, routing, manual assignment, status
updates, notes and the escalation sweep.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from supportflow.broker import create_broker
from supportflow.classifiers.sentiment import create_scorer
from supportflow.core.config import AppSettings
from supportflow.core.exceptions import (
    BrokerUnavailable,
    ConcurrentUpdate,
    RecordNotFound,
    ValidationError,
)
from supportflow.core.protocols import (
    IDirectory,
    IJobBroker,
    INotificationTransport,
    IRecordStore,
    ISentimentScorer,
)
from supportflow.models.job import CLASSIFICATION_STAGES, BrokerHealth, Stage, priority_value
from supportflow.models.record import HistoryEntry, IngestPayload, Record, RecordStatus, utcnow
from supportflow.notifications.dispatcher import NotificationDispatcher
from supportflow.notifications.notifier import Notifier
from supportflow.orchestrator.escalation import EscalationEngine
from supportflow.orchestrator.routing import MAX_WRITE_ATTEMPTS, RoutingDecision, RoutingEngine
from supportflow.orchestrator.status import status_update
from supportflow.persistence import create_persistence
from supportflow.workers.classification import (
    PriorityWorker,
    SentimentWorker,
    SpamWorker,
    TaggingWorker,
)
from supportflow.workers.fanout import FanOutWorker

logger = logging.getLogger(__name__)


class PipelineHealth(BaseModel):
    status: str  # "ok" or "degraded"
    broker: BrokerHealth


class Pipeline:
    """Wires the stage workers to the broker and fronts the core operations."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        broker: IJobBroker,
        records: IRecordStore,
        directory: IDirectory,
        scorer: ISentimentScorer | None = None,
        transports: Mapping[str, INotificationTransport] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self.broker = broker
        self.records = records
        self.directory = directory

        self.routing = RoutingEngine(records, directory)
        self.notifier = Notifier(broker, directory, settings.notifications)
        self.escalation = EscalationEngine(
            records,
            directory,
            notifier=self.notifier.notify_escalation,
            thresholds=settings.escalation.thresholds,
            default_threshold=settings.escalation.default_threshold,
            clock=clock,
        )

        workers = (
            FanOutWorker(records=records, broker=broker),
            TaggingWorker(records=records, on_complete=self._on_classified),
            SentimentWorker(records=records, scorer=scorer, on_complete=self._on_classified),
            PriorityWorker(records=records, on_complete=self._on_classified),
            SpamWorker(records=records, on_complete=self._on_classified),
            NotificationDispatcher(transports),
        )
        for worker in workers:
            broker.subscribe(worker.stage, worker)

    # ---- ingestion ----

    def create_and_enqueue(self, payload: IngestPayload | Mapping[str, Any]) -> str:
        """Create the record, then queue it for processing.

        The record is created even when the broker is down; the failure is
        recorded in its history and visible through ``health()``.
        """
        if not isinstance(payload, IngestPayload):
            try:
                payload = IngestPayload.model_validate(payload)
            except PydanticValidationError as exc:
                raise ValidationError(str(exc)) from exc

        fields = payload.model_dump(exclude={"received_at"})
        record = Record(
            **fields,
            received_at=payload.received_at or self._clock(),
            history=[HistoryEntry(action="Received", notes=f"Received via {payload.channel}")],
        )
        self.records.create(record)

        try:
            handle = self.broker.enqueue(
                Stage.QUERY_PROCESSING,
                {
                    "record_id": record.id,
                    "subject": record.subject,
                    "content": record.content,
                    "channel": str(record.channel),
                    "sender_name": record.sender_name,
                    "sender_email": record.sender_email,
                    "metadata": record.metadata,
                },
                priority=priority_value(record.priority),
                name="process-query",
            )
        except BrokerUnavailable as exc:
            logger.warning("Record %s created but not queued: %s", record.id, exc)
            self.records.patch(record.id, {}, [HistoryEntry(
                action="Queued processing unavailable",
                notes="Classification and routing deferred until the job broker recovers",
            )])
        else:
            logger.info("Record %s added to processing queue (job %s)", record.id, handle.id)
        return record.id

    # ---- routing ----

    def _on_classified(self, record_id: str, stage: Stage) -> None:
        """Route once, when the last of the four classification stages lands."""
        added, completed = self.records.add_completed_stage(record_id, str(stage))
        if not added or not set(CLASSIFICATION_STAGES) <= completed:
            return
        if not self._settings.auto_assign:
            return
        record = self.records.get(record_id)
        if record is None or record.status is not RecordStatus.NEW:
            return
        self.auto_route_and_assign(record_id)

    def auto_route_and_assign(self, record_id: str, actor: Optional[str] = None) -> RoutingDecision:
        decision = self.routing.auto_route_and_assign(record_id, actor)
        if decision.user is not None:
            self._notify_assignment(decision)
        return decision

    def manual_assign(self, record_id: str, user_id: str, team_id: str, actor: str) -> RoutingDecision:
        decision = self.routing.manual_assign(record_id, user_id, team_id, actor)
        if decision.user is not None:
            self._notify_assignment(decision)
        return decision

    def _notify_assignment(self, decision: RoutingDecision) -> None:
        try:
            self.notifier.notify_assignment(decision.record, decision.user)
        except BrokerUnavailable as exc:
            logger.warning("Assignment notice for record %s not queued: %s", decision.record.id, exc)

    # ---- agent actions ----

    def update_status(
        self, record_id: str, new_status: RecordStatus | str, actor: Optional[str], notes: Optional[str] = None
    ) -> Record:
        """Apply an agent status change; the transition is re-validated if the record moves underneath."""
        for _ in range(MAX_WRITE_ATTEMPTS - 1):
            try:
                return self._update_status_once(record_id, new_status, actor, notes)
            except ConcurrentUpdate:
                logger.info("Record %s changed during status update; re-validating", record_id)
        return self._update_status_once(record_id, new_status, actor, notes)

    def _update_status_once(
        self, record_id: str, new_status: RecordStatus | str, actor: Optional[str], notes: Optional[str]
    ) -> Record:
        record = self.records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        fields, entry = status_update(record, RecordStatus(new_status), actor, notes, self._clock())
        updated = self.records.patch(record.id, fields, [entry], expected_version=record.version)
        if "resolution_time" in fields and updated.assigned_to:
            self.directory.increment_user_stat(updated.assigned_to, "total_resolved")
        return updated

    def add_note(self, record_id: str, action: str, actor: str, notes: str = "") -> Record:
        return self.records.patch(
            record_id, {}, [HistoryEntry(action=action, performed_by=actor, notes=notes)]
        )

    # ---- sweeps & health ----

    def run_escalation_sweep(self) -> list[str]:
        return self.escalation.run_sweep()

    def process_next(self, stage: Stage) -> bool:
        return self.broker.process_next(stage)

    def health(self) -> PipelineHealth:
        broker = self.broker.health()
        return PipelineHealth(status="ok" if broker is BrokerHealth.UP else "degraded", broker=broker)

    def queue_stats(self) -> dict[str, dict[str, int]]:
        return self.broker.stats()


def create_pipeline(
    settings: AppSettings | None = None,
    *,
    scorer: ISentimentScorer | None = None,
    transports: Mapping[str, INotificationTransport] | None = None,
) -> Pipeline:
    """Build a pipeline with broker and stores from settings."""
    if settings is None:
        settings = AppSettings()
    records, directory = create_persistence(settings)
    return Pipeline(
        settings=settings,
        broker=create_broker(settings),
        records=records,
        directory=directory,
        scorer=scorer or create_scorer(settings.sentiment_scorer),
        transports=transports,
    )
