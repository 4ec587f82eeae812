"""Notification-stage worker: hands each job to the transport for its type."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from supportflow.core.exceptions import NotificationError
from supportflow.core.protocols import INotificationTransport
from supportflow.models.job import Job, Notification, NotificationType, Stage
from supportflow.notifications.transports import LogTransport

logger = logging.getLogger(__name__)


def default_transports() -> dict[str, INotificationTransport]:
    return {str(kind): LogTransport(str(kind)) for kind in NotificationType}


class NotificationDispatcher:
    """Decides nothing about content; only routes a payload to its transport."""

    stage = Stage.NOTIFICATION

    def __init__(self, transports: Mapping[str, INotificationTransport] | None = None) -> None:
        self._transports = dict(transports) if transports is not None else default_transports()

    def __call__(self, job: Job) -> dict[str, Any]:
        return self.handle(job)

    def handle(self, job: Job) -> dict[str, Any]:
        kind = job.data.get("type")
        transport = self._transports.get(str(kind))
        if transport is None:
            raise NotificationError(f"Unknown notification type: {kind}")

        notification = Notification.model_validate(job.data)
        delivered = transport.send(notification.recipient, notification.data)
        if delivered:
            logger.info("%s notification sent to %s", kind, notification.recipient or "channel")
        else:
            logger.warning("%s notification to %s not delivered", kind, notification.recipient or "channel")
        return {"success": delivered, "type": str(kind)}
