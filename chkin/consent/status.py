"""
Consent lifecycle status engine.

Derives the current state of a patient's consent from its dates:

    [consent given] -> [30 days before expiry: EXPIRING] -> [expiry: GRACE]
                    -> [expiry + grace period: EXPIRED]

WITHDRAWN can happen at any time and takes precedence over the time-based
states. Nothing here is stored; status is recomputed on every read so an
access decision always reflects the dates as they are now.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from chkin.config import settings

DEFAULT_GRACE_PERIOD_DAYS = settings.DEFAULT_GRACE_PERIOD_DAYS
EXPIRING_WARNING_DAYS = settings.EXPIRING_WARNING_DAYS

_SECONDS_PER_DAY = 24 * 60 * 60
_MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class ConsentStatus(str, Enum):
    NEVER_GIVEN = "NEVER_GIVEN"
    WITHDRAWN = "WITHDRAWN"
    ACTIVE = "ACTIVE"
    EXPIRING = "EXPIRING"
    GRACE = "GRACE"
    EXPIRED = "EXPIRED"


class RenewalUrgency(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RenewedBy(str, Enum):
    AUTO = "auto"
    PATIENT = "patient"
    PROVIDER = "provider"


@dataclass(frozen=True)
class ConsentRecord:
    """The consent-bearing fields of a submission."""

    consent_given: bool = False
    consent_at: datetime | None = None
    consent_expires_at: datetime | None = None
    consent_withdrawn_at: datetime | None = None
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS


@dataclass(frozen=True)
class ConsentStatusResult:
    status: ConsentStatus
    is_accessible: bool
    message: str
    days_remaining: int | None
    expires_at: datetime | None
    grace_period_ends_at: datetime | None
    can_renew: bool
    renewal_urgency: RenewalUrgency


@dataclass(frozen=True)
class RenewalHistoryEntry:
    """One append-only line of a submission's renewal history."""

    renewed_at: datetime
    previous_expires_at: datetime
    new_expires_at: datetime
    renewed_by: RenewedBy
    duration_months: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "renewedAt": self.renewed_at.isoformat(),
            "previousExpiresAt": self.previous_expires_at.isoformat(),
            "newExpiresAt": self.new_expires_at.isoformat(),
            "renewedBy": self.renewed_by.value,
            "durationMonths": self.duration_months,
        }


@dataclass(frozen=True)
class Badge:
    label: str
    color: str
    icon: str


_BADGES: dict[ConsentStatus, Badge] = {
    ConsentStatus.ACTIVE: Badge("Active", "green", "check"),
    ConsentStatus.EXPIRING: Badge("Expiring Soon", "yellow", "clock"),
    ConsentStatus.GRACE: Badge("Grace Period", "orange", "alert"),
    ConsentStatus.EXPIRED: Badge("Expired", "red", "x"),
    ConsentStatus.WITHDRAWN: Badge("Withdrawn", "gray", "x"),
    ConsentStatus.NEVER_GIVEN: Badge("No Consent", "gray", "minus"),
}


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _days_between(start: datetime, end: datetime) -> int:
    """Signed whole days from start to end, rounded up."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return math.ceil(seconds / _SECONDS_PER_DAY)


def add_months(moment: datetime, months: int) -> datetime:
    """
    Add calendar months, letting an overflowing day-of-month roll forward.

    Jan 31 + 1 month is Mar 3 (or Mar 2 in a leap year) rather than being
    clamped to the end of February. Time of day and tzinfo are kept.
    """
    index = moment.month - 1 + months
    year, month = moment.year + index // 12, index % 12 + 1
    first_of_month = moment.replace(year=year, month=month, day=1)
    return first_of_month + timedelta(days=moment.day - 1)


def format_date(moment: datetime) -> str:
    """Render a date as e.g. '1 Jul 2024'."""
    return f"{moment.day} {_MONTH_ABBR[moment.month - 1]} {moment.year}"


def _grace_period_end(expires_at: datetime, days: int) -> datetime | None:
    """
    End of the grace period, or None when it lies beyond the representable
    date range (such a grace period never ends).
    """
    try:
        ends_at = expires_at + timedelta(days=days)
        as_utc(ends_at)
    except OverflowError:
        return None
    return ends_at


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def calculate_status(
    record: ConsentRecord, now: datetime | None = None
) -> ConsentStatusResult:
    """
    Calculate the consent status of a record at ``now``.

    Rules are checked in order and the first match wins, so inconsistent
    records fall back to the most conservative status.
    """
    now = now or utcnow()

    if not record.consent_given or record.consent_at is None:
        return ConsentStatusResult(
            status=ConsentStatus.NEVER_GIVEN,
            is_accessible=False,
            message="Consent has never been given",
            days_remaining=None,
            expires_at=None,
            grace_period_ends_at=None,
            can_renew=False,
            renewal_urgency=RenewalUrgency.NONE,
        )

    if record.consent_withdrawn_at is not None:
        return ConsentStatusResult(
            status=ConsentStatus.WITHDRAWN,
            is_accessible=False,
            message="Consent has been withdrawn",
            days_remaining=None,
            expires_at=record.consent_expires_at,
            grace_period_ends_at=None,
            can_renew=False,
            renewal_urgency=RenewalUrgency.NONE,
        )

    # No expiry date means perpetual consent (legacy data)
    if record.consent_expires_at is None:
        return ConsentStatusResult(
            status=ConsentStatus.ACTIVE,
            is_accessible=True,
            message="Consent is active (no expiry set)",
            days_remaining=None,
            expires_at=None,
            grace_period_ends_at=None,
            can_renew=False,
            renewal_urgency=RenewalUrgency.NONE,
        )

    expires_at = record.consent_expires_at
    grace_period_ends_at = _grace_period_end(expires_at, record.grace_period_days)
    days_until_expiry = _days_between(now, expires_at)

    if grace_period_ends_at is not None and as_utc(now) > as_utc(grace_period_ends_at):
        return ConsentStatusResult(
            status=ConsentStatus.EXPIRED,
            is_accessible=False,
            message="Consent has expired and grace period has ended",
            days_remaining=days_until_expiry,
            expires_at=expires_at,
            grace_period_ends_at=grace_period_ends_at,
            can_renew=True,
            renewal_urgency=RenewalUrgency.CRITICAL,
        )

    if as_utc(now) > as_utc(expires_at):
        if grace_period_ends_at is None:
            message = "Consent expired, grace period has no end date"
        else:
            days_until_grace_ends = _days_between(now, grace_period_ends_at)
            message = f"Consent expired, grace period ends in {days_until_grace_ends} days"
        return ConsentStatusResult(
            status=ConsentStatus.GRACE,
            is_accessible=True,
            message=message,
            days_remaining=days_until_expiry,
            expires_at=expires_at,
            grace_period_ends_at=grace_period_ends_at,
            can_renew=True,
            renewal_urgency=RenewalUrgency.CRITICAL,
        )

    if days_until_expiry <= EXPIRING_WARNING_DAYS:
        if days_until_expiry <= 7:
            urgency = RenewalUrgency.HIGH
        elif days_until_expiry <= 14:
            urgency = RenewalUrgency.MEDIUM
        else:
            urgency = RenewalUrgency.LOW
        return ConsentStatusResult(
            status=ConsentStatus.EXPIRING,
            is_accessible=True,
            message=f"Consent expires in {days_until_expiry} days",
            days_remaining=days_until_expiry,
            expires_at=expires_at,
            grace_period_ends_at=grace_period_ends_at,
            can_renew=True,
            renewal_urgency=urgency,
        )

    return ConsentStatusResult(
        status=ConsentStatus.ACTIVE,
        is_accessible=True,
        message=f"Consent is active until {format_date(expires_at)}",
        days_remaining=days_until_expiry,
        expires_at=expires_at,
        grace_period_ends_at=grace_period_ends_at,
        can_renew=True,
        renewal_urgency=RenewalUrgency.NONE,
    )


def calculate_expiry(consent_at: datetime, duration_months: int) -> datetime:
    """Expiry date for consent given at ``consent_at`` for ``duration_months``."""
    return add_months(consent_at, duration_months)


def calculate_renewal_expiry(current_expires_at: datetime, duration_months: int) -> datetime:
    """New expiry after a renewal, counted from the current expiry (not today)."""
    return add_months(current_expires_at, duration_months)


def record_renewal(
    previous_expires_at: datetime,
    new_expires_at: datetime,
    renewed_by: RenewedBy | str,
    duration_months: int,
    now: datetime | None = None,
) -> RenewalHistoryEntry:
    """Build a renewal history entry. Appending it is up to the caller."""
    return RenewalHistoryEntry(
        renewed_at=now or utcnow(),
        previous_expires_at=previous_expires_at,
        new_expires_at=new_expires_at,
        renewed_by=RenewedBy(renewed_by),
        duration_months=duration_months,
    )


def badge_for(status: ConsentStatus | str) -> Badge:
    return _BADGES[ConsentStatus(status)]
