"""Redis-backed job broker implementing IJobBroker.

Each stage queue is a handful of Redis keys:

- ``{prefix}:{stage}:wait``      zset, score = priority * 1e12 - sequence
- ``{prefix}:{stage}:delayed``   zset, score = ready-at epoch seconds
- ``{prefix}:{stage}:active``    zset, score = claimed-at epoch seconds
- ``{prefix}:{stage}:completed`` zset, score = finished-at epoch seconds
- ``{prefix}:{stage}:failed``    zset, score = finished-at epoch seconds
- ``{prefix}:job:{id}``          JSON job body; expires once finished

Completed and failed indexes are trimmed to their retention window on every
write. Active jobs not
acknowledged within ``stalled_timeout`` seconds are returned to the wait queue
(or failed on their last attempt) by the next consumer to poll the stage.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional

import redis

from supportflow.core.exceptions import BrokerUnavailable, RecordNotFound
from supportflow.core.protocols import JobHandler
from supportflow.models.job import (
    DEFAULT_PRIORITY_VALUE,
    BrokerHealth,
    Job,
    JobHandle,
    JobState,
    Stage,
)

logger = logging.getLogger(__name__)

_SEQUENCE_SPAN = 10**12
_INITIAL_RECONNECT_DELAY = 0.1


class StageQueue:
    """Key layout for one stage. Only built once the broker is reachable."""

    def __init__(self, prefix: str, stage: Stage) -> None:
        self.stage = stage
        base = f"{prefix}:{stage}"
        self.wait = f"{base}:wait"
        self.delayed = f"{base}:delayed"
        self.active = f"{base}:active"
        self.completed = f"{base}:completed"
        self.failed = f"{base}:failed"


class RedisJobBroker:
    """Production IJobBroker backed by Redis sorted sets.

    The broker connects at construction. If Redis cannot be reached after
    ``reconnect_attempts`` tries it stays DOWN for the life of the process
    and every enqueue raises BrokerUnavailable immediately.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        *,
        key_prefix: str = "supportflow",
        connect_timeout: float = 5.0,
        reconnect_attempts: int = 5,
        reconnect_backoff_cap: float = 3.0,
        attempts: int = 3,
        backoff_delay: float = 2.0,
        completed_ttl: int = 3600,
        failed_ttl: int = 86400,
        stalled_timeout: float = 300.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._host = host
        self._port = port
        self._prefix = key_prefix
        self._reconnect_attempts = max(1, reconnect_attempts)
        self._reconnect_backoff_cap = reconnect_backoff_cap
        self._attempts = attempts
        self._backoff_delay = backoff_delay
        self._completed_ttl = completed_ttl
        self._failed_ttl = failed_ttl
        self._stalled_timeout = stalled_timeout
        self._clock = clock
        self._sleep = sleep
        self._client = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=connect_timeout,
        )
        self._queues: dict[Stage, StageQueue] = {}
        self._handlers: dict[Stage, JobHandler] = {}
        self._state = BrokerHealth.DOWN
        self.connect()

    # ---- connection ----

    def connect(self) -> bool:
        """Ping Redis with capped exponential backoff; build queues on success."""
        if self._state is BrokerHealth.UP:
            return True
        last_error: Exception | None = None
        for attempt in range(self._reconnect_attempts):
            try:
                self._client.ping()
            except redis.RedisError as exc:
                last_error = exc
                if attempt + 1 < self._reconnect_attempts:
                    delay = min(_INITIAL_RECONNECT_DELAY * 2**attempt, self._reconnect_backoff_cap)
                    self._sleep(delay)
                continue
            self._queues = {stage: StageQueue(self._prefix, stage) for stage in Stage}
            self._state = BrokerHealth.UP
            logger.info("Job broker connected to redis at %s:%s", self._host, self._port)
            return True

        logger.warning(
            "Job broker unavailable at %s:%s after %d attempts (%s); queued processing disabled",
            self._host, self._port, self._reconnect_attempts, last_error,
        )
        return False

    def health(self) -> BrokerHealth:
        if self._state is BrokerHealth.DOWN:
            return BrokerHealth.DOWN
        try:
            self._client.ping()
        except redis.RedisError:
            return BrokerHealth.DOWN
        return BrokerHealth.UP

    def _queue(self, stage: Stage) -> StageQueue:
        if self._state is BrokerHealth.DOWN:
            raise BrokerUnavailable(f"Job broker at {self._host}:{self._port} is down")
        return self._queues[Stage(stage)]

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    # ---- producing ----

    def enqueue(
        self,
        stage: Stage,
        data: dict[str, Any],
        priority: int = DEFAULT_PRIORITY_VALUE,
        name: Optional[str] = None,
    ) -> JobHandle:
        queue = self._queue(stage)
        try:
            sequence = int(self._client.incr(f"{self._prefix}:job-seq"))
            job = Job(
                id=str(sequence),
                stage=queue.stage,
                name=name or str(queue.stage),
                data=data,
                priority=priority,
                max_attempts=self._attempts,
            )
            with self._client.pipeline() as pipe:
                pipe.set(self._job_key(job.id), job.model_dump_json())
                pipe.zadd(queue.wait, {job.id: self._wait_score(priority, sequence)})
                pipe.execute()
        except redis.RedisError as exc:
            raise BrokerUnavailable(f"Enqueue to {queue.stage} failed: {exc}") from exc

        logger.debug("Job %s (%s) added to %s with priority %d", job.id, job.name, queue.stage, priority)
        return JobHandle(id=job.id, stage=job.stage, name=job.name, priority=priority)

    @staticmethod
    def _wait_score(priority: int, sequence: int) -> float:
        return priority * _SEQUENCE_SPAN - sequence

    # ---- consuming ----

    def subscribe(self, stage: Stage, handler: JobHandler) -> None:
        self._handlers[Stage(stage)] = handler

    def process_next(self, stage: Stage) -> bool:
        """Run one dequeue -> handle -> ack/retry cycle. False when nothing was waiting."""
        queue = self._queue(stage)
        handler = self._handlers.get(queue.stage)
        if handler is None:
            raise LookupError(f"No handler subscribed for stage {queue.stage}")

        try:
            self._recover_stalled(queue)
            self._promote_delayed(queue)
            job = self._claim(queue)
        except redis.RedisError as exc:
            raise BrokerUnavailable(f"Dequeue from {queue.stage} failed: {exc}") from exc
        if job is None:
            return False

        try:
            try:
                result = handler(job)
            except RecordNotFound as exc:
                logger.error("Job %s in %s references a missing record: %s", job.id, queue.stage, exc)
                self._fail(queue, job, str(exc))
            except Exception as exc:
                if job.attempts_made >= job.max_attempts:
                    logger.error(
                        "Job %s in %s failed after %d attempts: %s",
                        job.id, queue.stage, job.attempts_made, exc,
                    )
                    self._fail(queue, job, str(exc))
                else:
                    self._retry(queue, job, str(exc))
            else:
                self._complete(queue, job, result)
        except redis.RedisError as exc:
            raise BrokerUnavailable(f"Acknowledging job {job.id} in {queue.stage} failed: {exc}") from exc
        return True

    def _claim(self, queue: StageQueue) -> Job | None:
        """Move the highest-priority waiting job to active in one transaction.

        The attempt is counted at claim time, so a consumer that dies mid-job
        still uses up one attempt once the job is recovered as stalled.
        """
        with self._client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(queue.wait)
                    top = pipe.zrevrange(queue.wait, 0, 0)
                    if not top:
                        return None
                    job_id = top[0]
                    raw = pipe.get(self._job_key(job_id))
                    job = Job.model_validate_json(raw) if raw else None
                    pipe.multi()
                    pipe.zrem(queue.wait, job_id)
                    if job is not None:
                        job.attempts_made += 1
                        job.state = JobState.ACTIVE
                        pipe.set(self._job_key(job.id), job.model_dump_json())
                        pipe.zadd(queue.active, {job.id: self._clock()})
                    pipe.execute()
                except redis.WatchError:
                    continue  # another consumer changed the wait set; pick again
                if job is None:
                    logger.warning("Job %s in %s has no body; dropping", job_id, queue.stage)
                    continue
                return job

    def _recover_stalled(self, queue: StageQueue) -> None:
        """Requeue jobs whose consumer has held them longer than the stall timeout."""
        cutoff = self._clock() - self._stalled_timeout
        for job_id in self._client.zrangebyscore(queue.active, "-inf", cutoff):
            if not self._client.zrem(queue.active, job_id):
                continue  # another consumer recovered it
            job = self.get_job(job_id)
            if job is None:
                continue
            reason = f"Job stalled: no acknowledgement within {self._stalled_timeout:g}s"
            if job.attempts_made >= job.max_attempts:
                logger.error("Job %s in %s stalled on its last attempt; failing", job.id, queue.stage)
                self._fail(queue, job, reason)
                continue
            logger.warning(
                "Job %s in %s stalled (attempt %d/%d); returning it to the wait queue",
                job.id, queue.stage, job.attempts_made, job.max_attempts,
            )
            job.state = JobState.WAITING
            job.failed_reason = reason
            with self._client.pipeline() as pipe:
                pipe.set(self._job_key(job.id), job.model_dump_json())
                pipe.zadd(queue.wait, {job.id: self._wait_score(job.priority, int(job.id))})
                pipe.execute()

    def _promote_delayed(self, queue: StageQueue) -> None:
        for job_id in self._client.zrangebyscore(queue.delayed, "-inf", self._clock()):
            if not self._client.zrem(queue.delayed, job_id):
                continue  # another consumer promoted it
            job = self.get_job(job_id)
            if job is None:
                continue
            job.state = JobState.WAITING
            with self._client.pipeline() as pipe:
                pipe.set(self._job_key(job.id), job.model_dump_json())
                pipe.zadd(queue.wait, {job.id: self._wait_score(job.priority, int(job.id))})
                pipe.execute()

    def _retry(self, queue: StageQueue, job: Job, reason: str) -> None:
        job.delay = self._backoff_delay * 2 ** (job.attempts_made - 1)
        job.state = JobState.DELAYED
        job.failed_reason = reason
        logger.warning(
            "Job %s in %s failed (attempt %d/%d), retrying in %.1fs: %s",
            job.id, queue.stage, job.attempts_made, job.max_attempts, job.delay, reason,
        )
        with self._client.pipeline() as pipe:
            pipe.set(self._job_key(job.id), job.model_dump_json())
            pipe.zrem(queue.active, job.id)
            pipe.zadd(queue.delayed, {job.id: self._clock() + job.delay})
            pipe.execute()

    def _complete(self, queue: StageQueue, job: Job, result: Any) -> None:
        now = self._clock()
        job.state = JobState.COMPLETED
        job.finished_at = datetime.fromtimestamp(now, timezone.utc)
        job.return_value = result if isinstance(result, (dict, list, str, int, float, bool)) else None
        with self._client.pipeline() as pipe:
            pipe.set(self._job_key(job.id), job.model_dump_json(), ex=self._completed_ttl)
            pipe.zrem(queue.active, job.id)
            pipe.zadd(queue.completed, {job.id: now})
            pipe.zremrangebyscore(queue.completed, "-inf", now - self._completed_ttl)
            pipe.execute()
        logger.debug("Job %s in %s completed", job.id, queue.stage)

    def _fail(self, queue: StageQueue, job: Job, reason: str) -> None:
        now = self._clock()
        job.state = JobState.FAILED
        job.failed_reason = reason
        job.finished_at = datetime.fromtimestamp(now, timezone.utc)
        with self._client.pipeline() as pipe:
            pipe.set(self._job_key(job.id), job.model_dump_json(), ex=self._failed_ttl)
            pipe.zrem(queue.active, job.id)
            pipe.zadd(queue.failed, {job.id: now})
            pipe.zremrangebyscore(queue.failed, "-inf", now - self._failed_ttl)
            pipe.execute()

    # ---- inspection ----

    def get_job(self, job_id: str) -> Job | None:
        raw = self._client.get(self._job_key(job_id))
        return Job.model_validate_json(raw) if raw else None

    def failed_jobs(self, stage: Stage) -> list[Job]:
        queue = self._queue(stage)
        jobs = (self.get_job(job_id) for job_id in self._client.zrange(queue.failed, 0, -1))
        return [job for job in jobs if job is not None]

    def stats(self) -> dict[str, dict[str, int]]:
        """Waiting/delayed/active/completed/failed counts per stage."""
        if self._state is BrokerHealth.DOWN:
            return {}
        try:
            return {
                str(stage): {
                    "waiting": self._client.zcard(queue.wait),
                    "delayed": self._client.zcard(queue.delayed),
                    "active": self._client.zcard(queue.active),
                    "completed": self._client.zcard(queue.completed),
                    "failed": self._client.zcard(queue.failed),
                }
                for stage, queue in self._queues.items()
            }
        except redis.RedisError as exc:
            raise BrokerUnavailable(f"Queue stats unavailable: {exc}") from exc

