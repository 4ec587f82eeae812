"""Default notification transport.

Real SMTP/Slack/push transports are external collaborators; they only
need to satisfy INotificationTransport.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class LogTransport:
    """INotificationTransport that writes the notification to the log."""

    def __init__(self, kind: str) -> None:
        self._kind = kind

    def send(self, recipient: str | None, data: dict[str, Any]) -> bool:
        summary = data.get("subject") or data.get("text") or data.get("title") or ""
        logger.info("[%s] to %s: %s", self._kind, recipient or "channel", summary)
        return True
