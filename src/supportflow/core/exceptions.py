"""SupportFlow exception hierarchy."""

from __future__ import annotations


class SupportFlowError(Exception):
    """Base exception for all SupportFlow errors."""


class BrokerUnavailable(SupportFlowError):
    """The job broker is down; queue operations are impossible."""


class RecordNotFound(SupportFlowError):
    """A job or call referenced a record that does not exist."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found")


class ValidationError(SupportFlowError):
    """Malformed ingestion payload; rejected before a record is created."""


class ClassificationError(SupportFlowError):
    """A classification function failed for a record."""

    def __init__(self, stage: str, record_id: str, message: str) -> None:
        self.stage = stage
        self.record_id = record_id
        super().__init__(f"{stage} classification failed for record {record_id}: {message}")


class InvalidTransition(SupportFlowError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move record from {current!r} to {requested!r}")


class NotificationError(SupportFlowError):
    """Notification job could not be delivered to any transport."""


class StoreError(SupportFlowError):
    """Record or directory store operation failed."""


class ConcurrentUpdate(SupportFlowError):
    """A conditional write lost a race: the record changed since it was read."""

    def __init__(self, record_id: str, expected_version: int) -> None:
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(f"Record {record_id} changed since version {expected_version}")
