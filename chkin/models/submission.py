"""
Consent-bearing form submission, as handed over by the data layer.

A Submission is a read snapshot: the lifecycle functions never mutate one,
they return an updated copy for the caller to persist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from chkin.config import settings
from chkin.consent.status import (
    DEFAULT_GRACE_PERIOD_DAYS,
    ConsentRecord,
    RenewalHistoryEntry,
)


@dataclass(frozen=True)
class Submission:
    id: str
    organization_id: str
    organization_name: str = ""
    form_title: str = ""
    patient_email: str | None = None
    patient_name: str | None = None

    # Consent dates
    consent_given: bool = False
    consent_at: datetime | None = None
    consent_expires_at: datetime | None = None
    consent_withdrawn_at: datetime | None = None
    withdrawal_reason: str | None = None
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS

    # Renewal settings (submission overrides the form template)
    consent_duration_months: int | None = None
    auto_renew: bool = False
    allow_auto_renewal: bool = True
    default_consent_duration: int = settings.DEFAULT_CONSENT_DURATION_MONTHS
    renewal_count: int = 0
    renewed_at: datetime | None = None
    renewal_history: tuple[RenewalHistoryEntry, ...] = ()

    sent_notifications: frozenset[str] = field(default_factory=frozenset)
    data_categories: tuple[str, ...] = ()

    @property
    def consent(self) -> ConsentRecord:
        return ConsentRecord(
            consent_given=self.consent_given,
            consent_at=self.consent_at,
            consent_expires_at=self.consent_expires_at,
            consent_withdrawn_at=self.consent_withdrawn_at,
            grace_period_days=self.grace_period_days,
        )

    @property
    def renewal_duration(self) -> int:
        return self.consent_duration_months or self.default_consent_duration
