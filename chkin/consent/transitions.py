"""
State changes on a submission's consent: withdrawal and renewal.

Both return a new Submission; persisting it (and recomputing the status
for display) is the caller's job.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from chkin.consent.status import (
    RenewedBy,
    calculate_renewal_expiry,
    record_renewal,
    utcnow,
)
from chkin.models.submission import Submission
from chkin.services.audit import log_action


class ConsentTransitionError(ValueError):
    """The requested change is not allowed for the submission's consent."""


def withdraw(
    submission: Submission,
    reason: str | None = None,
    now: datetime | None = None,
) -> Submission:
    """Withdraw consent. Withdrawal is permanent."""
    if not submission.consent_given:
        raise ConsentTransitionError("No consent to withdraw")
    if submission.consent_withdrawn_at is not None:
        raise ConsentTransitionError("Consent already withdrawn")

    withdrawn = replace(
        submission,
        consent_withdrawn_at=now or utcnow(),
        withdrawal_reason=reason or None,
    )
    log_action(
        actor="patient",
        action="WITHDRAW_CONSENT",
        resource_type="Submission",
        resource_id=submission.id,
        detail={"reason": reason} if reason else None,
    )
    return withdrawn


def renew(
    submission: Submission,
    renewed_by: RenewedBy | str,
    duration_months: int | None = None,
    now: datetime | None = None,
) -> Submission:
    """
    Extend consent from its current expiry and append to the renewal history.

    Duration falls back to the submission's chosen duration, then to the
    form's default.
    """
    renewed_by = RenewedBy(renewed_by)
    if not submission.consent_given or submission.consent_at is None:
        raise ConsentTransitionError("No consent to renew")
    if submission.consent_withdrawn_at is not None:
        raise ConsentTransitionError("Withdrawn consent cannot be renewed")
    if submission.consent_expires_at is None:
        raise ConsentTransitionError("Consent has no expiry to renew")

    duration = duration_months if duration_months is not None else submission.renewal_duration
    if duration < 1:
        raise ConsentTransitionError("Renewal duration must be at least one month")

    now = now or utcnow()
    previous_expires_at = submission.consent_expires_at
    new_expires_at = calculate_renewal_expiry(previous_expires_at, duration)
    entry = record_renewal(previous_expires_at, new_expires_at, renewed_by, duration, now=now)

    renewed = replace(
        submission,
        consent_expires_at=new_expires_at,
        renewed_at=now,
        renewal_count=submission.renewal_count + 1,
        renewal_history=submission.renewal_history + (entry,),
    )
    log_action(
        actor=renewed_by.value,
        action="RENEW_CONSENT",
        resource_type="Submission",
        resource_id=submission.id,
        detail={
            "previous_expires_at": previous_expires_at.isoformat(),
            "new_expires_at": new_expires_at.isoformat(),
            "duration_months": duration,
        },
    )
    return renewed
