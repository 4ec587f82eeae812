"""End-to-end pipeline tests over fakeredis and the memory stores."""

from __future__ import annotations

from unittest.mock import patch

import fakeredis
import pytest

from supportflow.broker.redis_broker import RedisJobBroker
from supportflow.core.config import AppSettings
from supportflow.core.exceptions import InvalidTransition, RecordNotFound, ValidationError
from supportflow.models.job import BrokerHealth, Stage
from supportflow.models.record import IngestPayload, RecordStatus
from supportflow.orchestrator.pipeline import Pipeline
from tests.fakes import InterleavingRecordStore

URGENT_BILLING = {
    "channel": "phone",
    "subject": "",
    "content": "URGENT please help me ASAP, this is a complaint about billing charges",
    "sender_name": "Pat Doe",
    "sender_email": "pat@example.com",
}


def drain(pipeline: Pipeline) -> int:
    """Process every stage until all queues are empty. Returns jobs handled."""
    handled = 0
    progress = True
    while progress:
        progress = False
        for stage in Stage:
            while pipeline.process_next(stage):
                handled += 1
                progress = True
    return handled


class TestIngestion:
    def test_creates_record_and_queues_processing(self, pipeline, records):
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        record = records.get(record_id)
        assert record.status == RecordStatus.NEW
        assert record.history[0].action == "Received"
        assert pipeline.queue_stats()["query-processing"]["waiting"] == 1

    def test_accepts_ingest_payload(self, pipeline, records, clock):
        record_id = pipeline.create_and_enqueue(IngestPayload(channel="chat", content="hi"))
        assert records.get(record_id).received_at == clock.now

    @pytest.mark.parametrize("payload", [
        {"channel": "email", "content": "   "},
        {"channel": "fax", "content": "hello"},
        {"content": "hello"},
    ])
    def test_malformed_payload_rejected(self, pipeline, records, payload):
        with pytest.raises(ValidationError):
            pipeline.create_and_enqueue(payload)
        assert records.find() == []

    def test_broker_down_still_creates_record(self, settings, records, seeded_directory, transports):
        server = fakeredis.FakeServer()
        server.connected = False
        with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=server, decode_responses=True)):
            broker = RedisJobBroker(reconnect_attempts=1, sleep=lambda _: None)
        pipeline = Pipeline(settings=settings, broker=broker, records=records,
                            directory=seeded_directory, transports=transports)

        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        record = records.get(record_id)
        assert record.history[-1].action == "Queued processing unavailable"
        health = pipeline.health()
        assert health.status == "degraded"
        assert health.broker is BrokerHealth.DOWN


class TestFullFlow:
    def test_classify_route_assign_and_notify(self, pipeline, records, seeded_directory, transports):
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        drain(pipeline)

        record = records.get(record_id)
        assert set(record.tags) == {"request", "complaint", "billing"}
        assert record.primary_tag == "billing"
        assert record.priority == "urgent"
        assert record.priority_score == 100
        assert record.spam.is_spam is False
        assert record.sentiment is not None
        assert record.completed_stages == {"tagging", "sentiment", "priority", "spam-detection"}
        assert record.assigned_team == "billing-payments"
        assert record.assigned_to == "eve"
        assert record.status == RecordStatus.ASSIGNED

        actions = [h.action for h in record.history]
        assert actions[0] == "Received"
        assert actions[-1] == "Auto-assigned"
        assert {"Auto-tagged", "Sentiment analyzed", "Priority detected", "Spam check passed"} <= set(actions)

        assert seeded_directory.get_user("eve").stats.total_assigned == 1
        assert transports["email"].sent[0][0] == "eve@company.com"

    def test_routes_exactly_once(self, pipeline, records, seeded_directory):
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        drain(pipeline)
        # a duplicate stage completion must not re-route
        pipeline._on_classified(record_id, Stage.TAGGING)
        assert seeded_directory.get_team("billing-payments").stats.total_queries == 1
        assert [h.action for h in records.get(record_id).history].count("Auto-assigned") == 1

    def test_spam_is_closed_and_not_routed(self, pipeline, records):
        record_id = pipeline.create_and_enqueue({
            "channel": "email",
            "content": "Congratulations, you have won! Click here to claim your prize",
        })
        drain(pipeline)
        record = records.get(record_id)
        assert record.status == RecordStatus.CLOSED
        assert record.assigned_team is None

    def test_auto_assign_disabled(self, broker, records, seeded_directory, transports):
        pipeline = Pipeline(settings=AppSettings(auto_assign=False), broker=broker, records=records,
                            directory=seeded_directory, transports=transports)
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        drain(pipeline)
        record = records.get(record_id)
        assert record.status == RecordStatus.NEW
        assert record.completed_stages == {"tagging", "sentiment", "priority", "spam-detection"}

    def test_job_for_deleted_record_fails_without_retry(self, pipeline, broker):
        broker.enqueue(Stage.TAGGING, {"record_id": "vanished"})
        drain(pipeline)
        failed = broker.failed_jobs(Stage.TAGGING)
        assert len(failed) == 1
        assert failed[0].attempts_made == 1


class TestAgentActions:
    def test_status_lifecycle_and_resolution_stats(self, pipeline, records, seeded_directory, clock):
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        drain(pipeline)

        clock.advance(minutes=30)
        record = pipeline.update_status(record_id, "in_progress", "eve")
        assert record.response_time == 30
        clock.advance(minutes=60)
        record = pipeline.update_status(record_id, RecordStatus.RESOLVED, "eve", "Refunded")
        assert record.resolution_time == 90
        assert record.history[-1].notes == "Refunded"
        assert seeded_directory.get_user("eve").stats.total_resolved == 1

        pipeline.update_status(record_id, "closed", "eve")
        with pytest.raises(InvalidTransition):
            pipeline.update_status(record_id, "in_progress", "eve")

    def test_status_change_revalidated_after_concurrent_close(
        self, settings, broker, seeded_directory, transports, clock
    ):
        store = InterleavingRecordStore()
        pipeline = Pipeline(settings=settings, broker=broker, records=store, directory=seeded_directory,
                            transports=transports, clock=clock)
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        drain(pipeline)
        assert store.get(record_id).status == RecordStatus.ASSIGNED

        store.interleaved.append(lambda s: s.patch(record_id, {"status": RecordStatus.CLOSED}))
        with pytest.raises(InvalidTransition):
            pipeline.update_status(record_id, "in_progress", "eve")
        current = store.get(record_id)
        assert current.status == RecordStatus.CLOSED
        assert current.response_time is None

    def test_update_status_missing_record(self, pipeline):
        with pytest.raises(RecordNotFound):
            pipeline.update_status("missing", "closed", "eve")

    def test_manual_assign_notifies(self, pipeline, records):
        record_id = pipeline.create_and_enqueue({"channel": "chat", "content": "hello"})
        decision = pipeline.manual_assign(record_id, "alice", "customer-support", "frank")
        assert decision.record.assigned_to == "alice"
        assert pipeline.queue_stats()["notification"]["waiting"] == 1

    def test_add_note(self, pipeline, records):
        record_id = pipeline.create_and_enqueue({"channel": "chat", "content": "hello"})
        record = pipeline.add_note(record_id, "Internal note", "frank", "Called customer back")
        assert record.history[-1].performed_by == "frank"
        assert record.history[-1].notes == "Called customer back"


class TestEscalationSweep:
    def test_overdue_assigned_record_escalated_and_team_notified(self, pipeline, records, clock):
        record_id = pipeline.create_and_enqueue(URGENT_BILLING)
        drain(pipeline)

        clock.advance(minutes=30)
        assert pipeline.run_escalation_sweep() == []
        clock.advance(minutes=31)
        assert pipeline.run_escalation_sweep() == [record_id]

        record = records.get(record_id)
        assert record.status == RecordStatus.ESCALATED
        assert record.escalated_at == clock.now
        # escalation email to the single active billing agent
        assert pipeline.queue_stats()["notification"]["waiting"] == 1

        clock.advance(hours=5)
        assert pipeline.run_escalation_sweep() == []

    def test_escalated_record_not_auto_routed(self, pipeline, records, clock):
        record_id = pipeline.create_and_enqueue({"channel": "email", "content": "zzz"})
        clock.advance(hours=13)
        pipeline.run_escalation_sweep()
        decision = pipeline.auto_route_and_assign(record_id)
        assert not decision.assigned
        assert records.get(record_id).status == RecordStatus.ESCALATED
