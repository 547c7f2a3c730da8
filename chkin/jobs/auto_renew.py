"""
Daily consent auto-renewal job.

Renews consent for patients who opted in to auto-renewal once it is within
a week of expiring, provided the form still allows it. Renewals count from
the current expiry, so running the job early never shortens consent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable

from chkin.consent.status import (
    RenewedBy,
    as_utc,
    calculate_renewal_expiry,
    utcnow,
)
from chkin.consent.transitions import renew
from chkin.models.submission import Submission
from chkin.services.notifier import LoggingNotifier, Notification, Notifier

logger = logging.getLogger(__name__)

AUTO_RENEW_THRESHOLD_DAYS = 7
AUTO_RENEWAL_NOTIFICATION = "auto_renewal"


@dataclass
class RenewalRecord:
    submission_id: str
    patient_email: str
    previous_expires_at: datetime
    new_expires_at: datetime
    renewed: bool
    error: str | None = None


@dataclass
class AutoRenewReport:
    dry_run: bool
    renewals: list[RenewalRecord] = field(default_factory=list)
    # Updated snapshots for the caller to persist
    updated: list[Submission] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.renewals)

    @property
    def renewed(self) -> int:
        return sum(1 for r in self.renewals if r.renewed)

    @property
    def failed(self) -> int:
        if self.dry_run:
            return 0
        return sum(1 for r in self.renewals if not r.renewed)


def is_eligible(submission: Submission, now: datetime) -> bool:
    """Auto-renew opted in, live consent, expiring within the threshold."""
    if not submission.auto_renew or not submission.consent_given:
        return False
    if submission.consent_withdrawn_at is not None or not submission.patient_email:
        return False
    expires_at = submission.consent_expires_at
    if expires_at is None:
        return False
    threshold = now + timedelta(days=AUTO_RENEW_THRESHOLD_DAYS)
    return as_utc(now) <= as_utc(expires_at) <= as_utc(threshold)


def run_auto_renewals(
    submissions: Iterable[Submission],
    *,
    now: datetime | None = None,
    dry_run: bool = False,
    notifier: Notifier | None = None,
) -> AutoRenewReport:
    now = now or utcnow()
    notifier = notifier or LoggingNotifier()
    report = AutoRenewReport(dry_run=dry_run)

    logger.info("Starting consent auto-renewal job (dry_run=%s)", dry_run)
    eligible = [s for s in submissions if is_eligible(s, now)]
    logger.info("Found %d submissions eligible for auto-renewal", len(eligible))

    for submission in eligible:
        if not submission.allow_auto_renewal:
            logger.info(
                "Skipping %s - form no longer allows auto-renewal", submission.id
            )
            continue

        previous_expires_at = submission.consent_expires_at
        duration = submission.renewal_duration
        planned_expires_at = calculate_renewal_expiry(previous_expires_at, duration)

        record = RenewalRecord(
            submission_id=submission.id,
            patient_email=submission.patient_email,
            previous_expires_at=previous_expires_at,
            new_expires_at=planned_expires_at,
            renewed=False,
        )
        report.renewals.append(record)

        if dry_run:
            logger.info(
                "[dry run] Would auto-renew %s for %s: %s -> %s",
                submission.id, submission.patient_email,
                previous_expires_at.isoformat(), planned_expires_at.isoformat(),
            )
            continue

        try:
            renewed = renew(submission, RenewedBy.AUTO, duration, now=now)
        except Exception as exc:
            record.error = str(exc)
            logger.error("Failed to auto-renew %s: %s", submission.id, exc)
            continue

        record.renewed = True
        logger.info(
            "Auto-renewed consent for %s: %s -> %s",
            submission.id,
            previous_expires_at.isoformat(),
            renewed.consent_expires_at.isoformat(),
        )

        notification = Notification(
            submission_id=submission.id,
            notification_type=AUTO_RENEWAL_NOTIFICATION,
            recipient_email=submission.patient_email,
            recipient_name=submission.patient_name or "Patient",
            subject=(
                f"Consent Renewed: {submission.form_title} "
                f"at {submission.organization_name}"
            ),
        )
        try:
            notifier.send(notification)
        except Exception as exc:
            # consent is already renewed; only the confirmation is missing
            record.error = str(exc)
            logger.error(
                "Renewed %s but failed to notify %s: %s",
                submission.id, submission.patient_email, exc,
            )
        else:
            renewed = replace(
                renewed,
                sent_notifications=renewed.sent_notifications
                | {AUTO_RENEWAL_NOTIFICATION},
            )
        report.updated.append(renewed)

    logger.info(
        "Auto-renewal job complete. Renewed: %d, Failed: %d, Dry run: %d",
        report.renewed, report.failed, report.processed if dry_run else 0,
    )
    return report
