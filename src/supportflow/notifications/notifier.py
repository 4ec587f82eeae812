"""Decides when to notify and enqueues notification jobs."""

from __future__ import annotations

import logging
from typing import Optional

from supportflow.core.config import NotificationConfig
from supportflow.core.protocols import IDirectory, IJobBroker
from supportflow.models.directory import Team, User
from supportflow.models.job import Notification, Stage, priority_value
from supportflow.models.record import PriorityLevel, Record
from supportflow.notifications import messages

logger = logging.getLogger(__name__)


class Notifier:
    """Builds assignment/escalation notices and puts them on the notification queue."""

    def __init__(
        self, broker: IJobBroker, directory: IDirectory, config: NotificationConfig | None = None
    ) -> None:
        self._broker = broker
        self._directory = directory
        self._config = config or NotificationConfig()

    def _enqueue(self, notification: Notification, priority: int) -> None:
        self._broker.enqueue(
            Stage.NOTIFICATION,
            notification.model_dump(mode="json"),
            priority=priority,
            name="send-notification",
        )

    def notify_assignment(self, record: Record, user: User) -> int:
        """Email the assignee; Slack too when enabled. Returns jobs enqueued."""
        priority = priority_value(record.priority)
        notices = [messages.assignment_email(record, user, self._config.frontend_url)]
        if self._config.slack_enabled:
            notices.append(messages.assignment_slack(record, user, self._config.slack_channel))
        for notice in notices:
            self._enqueue(notice, priority)
        return len(notices)

    def notify_escalation(self, record: Record, team: Optional[Team]) -> int:
        """Email every active member of the assigned team; Slack alert when enabled."""
        priority = priority_value(PriorityLevel.URGENT)
        notices: list[Notification] = []
        if team is not None:
            for member in self._directory.list_users(team.id, active_only=True):
                notices.append(
                    messages.escalation_email(record, team, member.email, self._config.frontend_url)
                )
        if self._config.slack_enabled:
            notices.append(messages.escalation_slack(record, self._config.slack_channel))
        for notice in notices:
            self._enqueue(notice, priority)
        logger.info("Record %s escalation: %d notification(s) queued", record.id, len(notices))
        return len(notices)
