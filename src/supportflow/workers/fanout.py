"""Primary-intake worker: fans one record out to the classification stages."""

from __future__ import annotations

import logging
from typing import Any

from supportflow.core.protocols import IJobBroker, IRecordStore
from supportflow.models.job import CLASSIFICATION_STAGES, Job, Stage, priority_value
from supportflow.workers.base import BaseWorker

logger = logging.getLogger(__name__)

JOB_NAMES: dict[Stage, str] = {
    Stage.TAGGING: "tag-query",
    Stage.SENTIMENT: "analyze-sentiment",
    Stage.PRIORITY: "detect-priority",
    Stage.SPAM: "detect-spam",
}


class FanOutWorker(BaseWorker):
    """Dispatches one job per classification stage.

    Any enqueue failure propagates so the intake job is retried by the
    broker instead of silently dropping a classification.
    """

    stage = Stage.QUERY_PROCESSING

    def __init__(self, *, records: IRecordStore, broker: IJobBroker) -> None:
        super().__init__(records=records)
        self._broker = broker

    def handle(self, job: Job) -> dict[str, Any]:
        record = self._load(job.data["record_id"])
        data = {
            "record_id": record.id,
            "subject": record.subject,
            "content": record.content,
            "channel": str(record.channel),
            "sender_email": record.sender_email,
        }
        priority = priority_value(record.priority)
        job_ids = [
            self._broker.enqueue(stage, data, priority=priority, name=JOB_NAMES[stage]).id
            for stage in CLASSIFICATION_STAGES
        ]
        logger.info("Record %s queued for classification (jobs %s)", record.id, ", ".join(job_ids))
        return {"success": True, "record_id": record.id, "jobs": job_ids}
