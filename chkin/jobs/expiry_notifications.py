"""
Daily consent expiry notification job.

Patients are warned 30, 14, 7 and 1 day(s) before their consent expires.
Each warning is sent once per submission: the keys of notifications
already delivered come in with the submission snapshot, and the keys sent
by this run go back out in the report for the caller to store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable

from chkin.config import settings
from chkin.consent.status import as_utc, utcnow
from chkin.models.submission import Submission
from chkin.services.notifier import LoggingNotifier, Notification, Notifier

logger = logging.getLogger(__name__)

# Days before expiry at which a warning goes out
NOTIFICATION_DAYS = (30, 14, 7, 1)


@dataclass
class NotificationRecord:
    submission_id: str
    patient_email: str
    days_remaining: int
    notification_type: str
    sent: bool
    error: str | None = None


@dataclass
class ExpiryJobReport:
    dry_run: bool
    notifications: list[NotificationRecord] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.notifications)

    @property
    def sent(self) -> int:
        return sum(1 for n in self.notifications if n.sent)

    @property
    def failed(self) -> int:
        if self.dry_run:
            return 0
        return sum(1 for n in self.notifications if not n.sent)


def notification_key(days: int) -> str:
    return f"expiry_{days}d"


def expiry_subject(days_remaining: int, organization_name: str) -> str:
    if days_remaining <= 7:
        return (
            f"Urgent: Your consent with {organization_name} "
            f"expires in {days_remaining} days"
        )
    if days_remaining <= 14:
        return f"Reminder: Your consent with {organization_name} expires soon"
    return (
        f"Notice: Your consent with {organization_name} "
        f"will expire in {days_remaining} days"
    )


def renewal_url(submission_id: str, base_url: str | None = None) -> str:
    base = (base_url or settings.APP_BASE_URL).rstrip("/")
    return f"{base}/patient/submissions/{submission_id}"


def _calendar_day(moment: datetime, tz: tzinfo | None) -> date:
    """The date ``moment`` falls on, seen from ``tz`` (naive values are UTC)."""
    return as_utc(moment).astimezone(tz or timezone.utc).date()


def is_due(submission: Submission, days: int, now: datetime) -> bool:
    """Whether the ``days``-before-expiry warning should go out today."""
    if not submission.consent_given or submission.consent_withdrawn_at is not None:
        return False
    if submission.consent_expires_at is None or not submission.patient_email:
        return False
    if notification_key(days) in submission.sent_notifications:
        return False
    target_day = (now + timedelta(days=days)).date()
    return _calendar_day(submission.consent_expires_at, now.tzinfo) == target_day


def run_expiry_notifications(
    submissions: Iterable[Submission],
    *,
    now: datetime | None = None,
    dry_run: bool = False,
    notifier: Notifier | None = None,
    base_url: str | None = None,
) -> ExpiryJobReport:
    now = now or utcnow()
    notifier = notifier or LoggingNotifier()
    submissions = list(submissions)
    report = ExpiryJobReport(dry_run=dry_run)

    logger.info("Starting consent expiry notification job (dry_run=%s)", dry_run)

    for days in NOTIFICATION_DAYS:
        due = [s for s in submissions if is_due(s, days, now)]
        logger.info("Found %d submissions expiring in ~%d days", len(due), days)

        for submission in due:
            key = notification_key(days)
            record = NotificationRecord(
                submission_id=submission.id,
                patient_email=submission.patient_email,
                days_remaining=days,
                notification_type=key,
                sent=False,
            )
            report.notifications.append(record)

            if dry_run:
                logger.info(
                    "[dry run] Would send %d-day warning to %s for submission %s",
                    days, submission.patient_email, submission.id,
                )
                continue

            notification = Notification(
                submission_id=submission.id,
                notification_type=key,
                recipient_email=submission.patient_email,
                recipient_name=submission.patient_name or "Patient",
                subject=expiry_subject(days, submission.organization_name),
                link=renewal_url(submission.id, base_url),
            )
            try:
                notifier.send(notification)
                record.sent = True
            except Exception as exc:
                record.error = str(exc)
                logger.error(
                    "Failed to send %s to %s: %s", key, submission.patient_email, exc
                )

    logger.info(
        "Consent expiry job complete. Sent: %d, Failed: %d, Dry run: %d",
        report.sent, report.failed, report.processed if dry_run else 0,
    )
    return report
