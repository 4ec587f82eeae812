"""Unit tests for RedisJobBroker using fakeredis."""

from __future__ import annotations

from unittest.mock import patch

import fakeredis
import pytest

from supportflow.broker.redis_broker import RedisJobBroker
from supportflow.core.exceptions import BrokerUnavailable, RecordNotFound
from supportflow.core.protocols import IJobBroker
from supportflow.models.job import BrokerHealth, JobState, Stage


def _collecting(seen):
    def handler(job):
        seen.append(job)
        return {"ok": True}

    return handler


class TestConnect:
    def test_up_after_connect(self, broker):
        assert broker.health() is BrokerHealth.UP
        assert isinstance(broker, IJobBroker)

    def test_down_when_unreachable(self):
        server = fakeredis.FakeServer()
        server.connected = False
        sleeps = []
        with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=server, decode_responses=True)):
            down = RedisJobBroker(reconnect_attempts=3, reconnect_backoff_cap=0.15, sleep=sleeps.append)
        assert down.health() is BrokerHealth.DOWN
        # capped exponential backoff between attempts
        assert sleeps == [0.1, 0.15]

    def test_down_broker_rejects_enqueue(self):
        server = fakeredis.FakeServer()
        server.connected = False
        with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=server, decode_responses=True)):
            down = RedisJobBroker(reconnect_attempts=1, sleep=lambda _: None)
        with pytest.raises(BrokerUnavailable):
            down.enqueue(Stage.TAGGING, {"record_id": "r1"})
        assert down.stats() == {}

    def test_health_reports_down_when_connection_drops(self, broker, fake_server):
        fake_server.connected = False
        assert broker.health() is BrokerHealth.DOWN


class TestEnqueueAndDequeue:
    def test_enqueue_returns_handle(self, broker):
        handle = broker.enqueue(Stage.TAGGING, {"record_id": "r1"}, priority=7, name="tag-query")
        assert handle.stage == Stage.TAGGING
        assert handle.name == "tag-query"
        assert handle.priority == 7
        assert broker.stats()["tagging"]["waiting"] == 1

    def test_higher_priority_first(self, broker):
        seen = []
        broker.subscribe(Stage.TAGGING, _collecting(seen))
        broker.enqueue(Stage.TAGGING, {"record_id": "low"}, priority=1)
        broker.enqueue(Stage.TAGGING, {"record_id": "urgent"}, priority=10)
        broker.enqueue(Stage.TAGGING, {"record_id": "medium"}, priority=4)
        while broker.process_next(Stage.TAGGING):
            pass
        assert [j.data["record_id"] for j in seen] == ["urgent", "medium", "low"]

    def test_fifo_within_priority(self, broker):
        seen = []
        broker.subscribe(Stage.SPAM, _collecting(seen))
        for rid in ("a", "b", "c"):
            broker.enqueue(Stage.SPAM, {"record_id": rid}, priority=4)
        while broker.process_next(Stage.SPAM):
            pass
        assert [j.data["record_id"] for j in seen] == ["a", "b", "c"]

    def test_stages_are_independent(self, broker):
        broker.enqueue(Stage.TAGGING, {"record_id": "r1"})
        broker.subscribe(Stage.SENTIMENT, _collecting([]))
        assert broker.process_next(Stage.SENTIMENT) is False
        assert broker.stats()["tagging"]["waiting"] == 1

    def test_empty_queue_returns_false(self, broker):
        broker.subscribe(Stage.TAGGING, _collecting([]))
        assert broker.process_next(Stage.TAGGING) is False

    def test_no_handler_raises(self, broker):
        with pytest.raises(LookupError):
            broker.process_next(Stage.PRIORITY)

    def test_completed_job_kept_with_return_value(self, broker):
        broker.subscribe(Stage.TAGGING, _collecting([]))
        handle = broker.enqueue(Stage.TAGGING, {"record_id": "r1"})
        broker.process_next(Stage.TAGGING)
        job = broker.get_job(handle.id)
        assert job.state is JobState.COMPLETED
        assert job.return_value == {"ok": True}
        assert broker.stats()["tagging"]["completed"] == 1
        assert broker.stats()["tagging"]["active"] == 0


class TestRetry:
    def test_retries_with_exponential_backoff_then_fails(self, broker, clock):
        calls = []

        def flaky(job):
            calls.append(job.attempts_made)
            raise RuntimeError("boom")

        broker.subscribe(Stage.PRIORITY, flaky)
        handle = broker.enqueue(Stage.PRIORITY, {"record_id": "r1"})

        assert broker.process_next(Stage.PRIORITY) is True
        job = broker.get_job(handle.id)
        assert job.state is JobState.DELAYED
        assert job.delay == 2.0

        # not ready yet
        assert broker.process_next(Stage.PRIORITY) is False
        clock.advance(seconds=2)
        assert broker.process_next(Stage.PRIORITY) is True
        assert broker.get_job(handle.id).delay == 4.0

        clock.advance(seconds=4)
        assert broker.process_next(Stage.PRIORITY) is True
        job = broker.get_job(handle.id)
        assert job.state is JobState.FAILED
        assert job.failed_reason == "boom"
        assert calls == [1, 2, 3]
        assert [j.id for j in broker.failed_jobs(Stage.PRIORITY)] == [handle.id]

    def test_succeeds_on_second_attempt(self, broker, clock):
        attempts = []

        def once_flaky(job):
            attempts.append(job.attempts_made)
            if job.attempts_made == 1:
                raise RuntimeError("transient")
            return {"ok": True}

        broker.subscribe(Stage.SENTIMENT, once_flaky)
        handle = broker.enqueue(Stage.SENTIMENT, {"record_id": "r1"})
        broker.process_next(Stage.SENTIMENT)
        clock.advance(seconds=2)
        broker.process_next(Stage.SENTIMENT)
        assert attempts == [1, 2]
        assert broker.get_job(handle.id).state is JobState.COMPLETED

    def test_missing_record_fails_without_retry(self, broker):
        def handler(job):
            raise RecordNotFound(job.data["record_id"])

        broker.subscribe(Stage.TAGGING, handler)
        handle = broker.enqueue(Stage.TAGGING, {"record_id": "gone"})
        broker.process_next(Stage.TAGGING)
        job = broker.get_job(handle.id)
        assert job.state is JobState.FAILED
        assert job.attempts_made == 1
        assert broker.stats()["tagging"]["delayed"] == 0


class _ConsumerDied(BaseException):
    """Stands in for a worker process killed mid-job."""


def _dies(job):
    raise _ConsumerDied()


def _second_consumer(fake_server, clock, **kwargs):
    with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=fake_server, decode_responses=True)):
        return RedisJobBroker(clock=clock.epoch, sleep=lambda _: None, **kwargs)


class TestClaim:
    def test_job_is_active_while_handler_runs(self, broker):
        observed = []

        def handler(job):
            observed.append(broker.stats()["tagging"])
            return None

        broker.subscribe(Stage.TAGGING, handler)
        broker.enqueue(Stage.TAGGING, {"record_id": "r1"})
        broker.process_next(Stage.TAGGING)
        assert observed[0]["waiting"] == 0
        assert observed[0]["active"] == 1

    def test_body_missing_job_is_skipped(self, broker, fake_server):
        seen = []
        broker.subscribe(Stage.TAGGING, _collecting(seen))
        lost = broker.enqueue(Stage.TAGGING, {"record_id": "lost"}, priority=10)
        broker.enqueue(Stage.TAGGING, {"record_id": "kept"})
        fakeredis.FakeRedis(server=fake_server).delete(f"supportflow:job:{lost.id}")
        assert broker.process_next(Stage.TAGGING) is True
        assert [j.data["record_id"] for j in seen] == ["kept"]


class TestStalledJobs:
    def test_crashed_consumer_job_is_recovered(self, broker, fake_server, clock):
        broker.subscribe(Stage.TAGGING, _dies)
        handle = broker.enqueue(Stage.TAGGING, {"record_id": "r1"})
        with pytest.raises(_ConsumerDied):
            broker.process_next(Stage.TAGGING)
        assert broker.stats()["tagging"]["active"] == 1

        seen = []
        survivor = _second_consumer(fake_server, clock)
        survivor.subscribe(Stage.TAGGING, _collecting(seen))
        # still within the stall window: not handed out twice
        assert survivor.process_next(Stage.TAGGING) is False

        clock.advance(seconds=301)
        assert survivor.process_next(Stage.TAGGING) is True
        assert [j.id for j in seen] == [handle.id]
        job = survivor.get_job(handle.id)
        assert job.state is JobState.COMPLETED
        assert job.attempts_made == 2
        assert survivor.stats()["tagging"]["active"] == 0

    def test_stall_on_last_attempt_fails_job(self, fake_server, clock):
        broker = _second_consumer(fake_server, clock, attempts=1, stalled_timeout=30)
        broker.subscribe(Stage.SPAM, _dies)
        handle = broker.enqueue(Stage.SPAM, {"record_id": "r1"})
        with pytest.raises(_ConsumerDied):
            broker.process_next(Stage.SPAM)

        clock.advance(seconds=31)
        broker.subscribe(Stage.SPAM, _collecting([]))
        assert broker.process_next(Stage.SPAM) is False
        job = broker.get_job(handle.id)
        assert job.state is JobState.FAILED
        assert job.failed_reason.startswith("Job stalled")
        assert broker.stats()["spam-detection"] == {
            "waiting": 0, "delayed": 0, "active": 0, "completed": 0, "failed": 1,
        }


class TestRetention:
    def test_completed_index_trimmed_on_write(self, broker, clock):
        broker.subscribe(Stage.TAGGING, _collecting([]))
        for rid in ("r1", "r2", "r3"):
            broker.enqueue(Stage.TAGGING, {"record_id": rid})
            broker.process_next(Stage.TAGGING)
            clock.advance(hours=2)
        assert broker.stats()["tagging"]["completed"] == 1

    def test_failed_index_trimmed_on_write(self, broker, clock):
        def handler(job):
            raise RecordNotFound(job.data["record_id"])

        broker.subscribe(Stage.PRIORITY, handler)
        broker.enqueue(Stage.PRIORITY, {"record_id": "old"})
        broker.process_next(Stage.PRIORITY)
        clock.advance(hours=12)
        broker.enqueue(Stage.PRIORITY, {"record_id": "recent"})
        broker.process_next(Stage.PRIORITY)
        assert broker.stats()["priority"]["failed"] == 2

        clock.advance(hours=13)
        broker.enqueue(Stage.PRIORITY, {"record_id": "new"})
        broker.process_next(Stage.PRIORITY)
        assert [j.data["record_id"] for j in broker.failed_jobs(Stage.PRIORITY)] == ["recent", "new"]
