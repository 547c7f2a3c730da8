"""
Patient notifications for consent expiry and renewal.

Delivery is pluggable: the jobs talk to anything with a ``send`` method.
The default notifier writes the message to the log, which is what runs in
development and in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    submission_id: str
    notification_type: str
    recipient_email: str
    recipient_name: str
    subject: str
    link: str | None = None


class Notifier(Protocol):
    def send(self, notification: Notification) -> str | None:
        """Deliver a notification and return the provider's message id, if any."""
        ...


class LoggingNotifier:
    """Writes notifications to the log instead of delivering them."""

    def send(self, notification: Notification) -> str | None:
        logger.info(
            "Notify %s <%s>: %s (%s, submission %s)",
            notification.recipient_name,
            notification.recipient_email,
            notification.subject,
            notification.notification_type,
            notification.submission_id,
        )
        return None
