"""Base worker with common dependency wiring and the classification template."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from supportflow.core.exceptions import ClassificationError, RecordNotFound
from supportflow.core.protocols import IRecordStore
from supportflow.models.job import Job, Stage
from supportflow.models.record import HistoryEntry, Record

logger = logging.getLogger(__name__)

StageCompleteCallback = Callable[[str, Stage], None]


class BaseWorker:
    """Common base for all stage workers.

    The record store is injected at construction time; the instance itself
    is the job handler passed to ``broker.subscribe``.
    """

    stage: Stage

    def __init__(self, *, records: IRecordStore) -> None:
        self._records = records

    def __call__(self, job: Job) -> dict[str, Any]:
        return self.handle(job)

    def handle(self, job: Job) -> dict[str, Any]:
        raise NotImplementedError

    def _load(self, record_id: str) -> Record:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record


class ClassificationWorker(BaseWorker):
    """Load -> classify -> patch own fields + one history entry.

    Subclasses implement ``classify`` as a pure function of the record's
    content; it returns the fields it owns and the history entry to append.
    """

    def __init__(
        self, *, records: IRecordStore, on_complete: StageCompleteCallback | None = None
    ) -> None:
        super().__init__(records=records)
        self._on_complete = on_complete

    def classify(self, record: Record) -> tuple[dict[str, Any], HistoryEntry]:
        raise NotImplementedError

    def handle(self, job: Job) -> dict[str, Any]:
        record = self._load(job.data["record_id"])
        try:
            fields, entry = self.classify(record)
        except Exception as exc:
            raise ClassificationError(self.stage, record.id, str(exc)) from exc

        self._records.patch(record.id, fields, [entry])
        logger.info("Record %s %s: %s", record.id, self.stage, entry.notes)
        if self._on_complete is not None:
            self._on_complete(record.id, self.stage)
        return {"success": True, "record_id": record.id, "stage": str(self.stage)}
