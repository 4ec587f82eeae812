"""Notification content for assignments and escalations."""

from __future__ import annotations

from typing import Any, Optional

from supportflow.models.directory import Team, User
from supportflow.models.job import Notification, NotificationType
from supportflow.models.record import PriorityLevel, Record

_PRIORITY_COLORS = {PriorityLevel.URGENT: "danger", PriorityLevel.HIGH: "warning"}


def record_url(frontend_url: str, record: Record) -> str:
    return f"{frontend_url.rstrip('/')}/query/{record.id}"


def _email(recipient: str, subject: str, text: str) -> Notification:
    data: dict[str, Any] = {
        "subject": subject,
        "text": text,
        "html": text.replace("\n", "<br>"),
    }
    return Notification(type=NotificationType.EMAIL, recipient=recipient, data=data)


def assignment_email(record: Record, user: User, frontend_url: str) -> Notification:
    text = (
        f"Hello {user.name},\n\n"
        "A new query has been assigned to you:\n\n"
        f"Subject: {record.subject}\n"
        f"Priority: {record.priority}\n"
        f"Channel: {record.channel}\n"
        f"From: {record.sender_name}\n\n"
        f"View and respond: {record_url(frontend_url, record)}\n\n"
        "Best regards,\nQuery Management System\n"
    )
    return _email(user.email, f"New Query Assigned: {record.subject}", text)


def assignment_slack(record: Record, user: User, channel: str) -> Notification:
    return Notification(
        type=NotificationType.SLACK,
        data={
            "text": f"New query assigned to {user.name}",
            "channel": channel,
            "attachments": [{
                "color": _PRIORITY_COLORS.get(record.priority, "good"),
                "title": record.subject,
                "fields": [
                    {"title": "Priority", "value": str(record.priority), "short": True},
                    {"title": "Channel", "value": str(record.channel), "short": True},
                    {"title": "From", "value": record.sender_name, "short": True},
                ],
            }],
        },
    )


def escalation_email(
    record: Record, team: Optional[Team], recipient: str, frontend_url: str
) -> Notification:
    text = (
        "A query has been escalated and requires immediate attention:\n\n"
        f"Subject: {record.subject}\n"
        f"Priority: {record.priority}\n"
        f"Escalation Reason: {record.escalation_reason or 'Response time exceeded'}\n"
        f"Assigned Team: {team.name if team else 'Unassigned'}\n\n"
        f"View query: {record_url(frontend_url, record)}\n"
    )
    return _email(recipient, f"Escalated Query: {record.subject}", text)


def escalation_slack(record: Record, channel: str) -> Notification:
    return Notification(
        type=NotificationType.SLACK,
        data={
            "text": f"Query Escalated: {record.subject}",
            "channel": channel,
            "attachments": [{
                "color": "danger",
                "title": record.subject,
                "text": record.escalation_reason or "Response time exceeded",
            }],
        },
    )
