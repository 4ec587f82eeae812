"""Worker process entry point.

Starts one consumer loop per stage queue plus the periodic escalation
sweep, and stops them on SIGINT/SIGTERM.

Usage:
    python -m supportflow.runner --stages tagging sentiment --no-escalation
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from collections.abc import Sequence

from supportflow.core.app_logging import init_logging
from supportflow.core.config import AppSettings
from supportflow.core.exceptions import BrokerUnavailable
from supportflow.models.job import BrokerHealth, Stage
from supportflow.orchestrator.pipeline import Pipeline, create_pipeline

logger = logging.getLogger(__name__)


class ConsumerLoop(threading.Thread):
    """Processes one stage until stopped; idles ``poll_interval`` when empty."""

    def __init__(self, pipeline: Pipeline, stage: Stage, stop: threading.Event,
                 poll_interval: float = 1.0) -> None:
        super().__init__(name=f"consumer-{stage}", daemon=True)
        self._pipeline = pipeline
        self._stage = stage
        self._stop_event = stop
        self._poll_interval = poll_interval

    def run(self) -> None:
        logger.info("Consumer for %s started", self._stage)
        while not self._stop_event.is_set():
            try:
                worked = self._pipeline.process_next(self._stage)
            except BrokerUnavailable as exc:
                logger.error("Consumer for %s: %s", self._stage, exc)
                worked = False
            if not worked:
                self._stop_event.wait(self._poll_interval)
        logger.info("Consumer for %s stopped", self._stage)


class EscalationScheduler(threading.Thread):
    """Runs the escalation sweep every ``interval`` seconds, one at a time."""

    def __init__(self, pipeline: Pipeline, stop: threading.Event, interval: float) -> None:
        super().__init__(name="escalation-sweep", daemon=True)
        self._pipeline = pipeline
        self._stop_event = stop
        self._interval = interval

    def run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._pipeline.run_escalation_sweep()
            except Exception:
                logger.exception("Escalation sweep failed; retrying in %ss", self._interval)


def start(
    pipeline: Pipeline,
    stages: Sequence[Stage],
    stop: threading.Event,
    settings: AppSettings,
    escalation: bool = True,
) -> list[threading.Thread]:
    threads: list[threading.Thread] = [
        ConsumerLoop(pipeline, stage, stop, settings.queue.poll_interval) for stage in stages
    ]
    if escalation:
        threads.append(EscalationScheduler(pipeline, stop, settings.escalation.interval_seconds))
    for thread in threads:
        thread.start()
    return threads


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run SupportFlow stage workers")
    parser.add_argument(
        "--stages", nargs="+", choices=[str(s) for s in Stage], default=[str(s) for s in Stage],
        help="Stage queues to consume (default: all)",
    )
    parser.add_argument("--no-escalation", action="store_true", help="Do not run the escalation sweep")
    args = parser.parse_args(argv)

    settings = AppSettings()
    init_logging(settings)
    pipeline = create_pipeline(settings)

    if pipeline.broker.health() is BrokerHealth.DOWN:
        logger.error("Job broker is down; workers cannot consume. Exiting.")
        return 1

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    threads = start(pipeline, [Stage(s) for s in args.stages], stop, settings,
                    escalation=not args.no_escalation)
    logger.info("Workers started: %s", ", ".join(args.stages))
    while not stop.wait(1.0):
        pass
    for thread in threads:
        thread.join(timeout=settings.queue.poll_interval + 1)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
