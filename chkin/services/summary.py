"""
Patient-facing consent overview, grouped by organisation.

Every submission's status is evaluated at the same ``now`` so the counts
of one summary are consistent with each other.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from chkin.consent.status import (
    ConsentStatus,
    ConsentStatusResult,
    RenewalUrgency,
    as_utc,
    calculate_status,
    utcnow,
)
from chkin.models.submission import Submission

_ACTIVE = {ConsentStatus.ACTIVE, ConsentStatus.EXPIRING}
_EXPIRED = {ConsentStatus.GRACE, ConsentStatus.EXPIRED}
_URGENT = {RenewalUrgency.HIGH, RenewalUrgency.CRITICAL}


@dataclass
class OrganizationConsent:
    organization_id: str
    organization_name: str
    has_active_consent: bool
    has_withdrawn_consent: bool
    has_expiring_consent: bool
    has_expired_consent: bool
    consent_statuses: dict[ConsentStatus, int]
    earliest_expiry: datetime | None
    urgent_renewals: int
    first_consent_at: datetime | None
    last_consent_at: datetime | None
    withdrawn_at: datetime | None
    total_submissions: int
    active_submissions: int
    withdrawn_submissions: int
    expiring_submissions: int
    expired_submissions: int
    data_categories: list[str] = field(default_factory=list)


@dataclass
class ConsentSummary:
    consents: list[OrganizationConsent]

    @property
    def total_organizations(self) -> int:
        return len(self.consents)

    @property
    def active_consents(self) -> int:
        return sum(1 for c in self.consents if c.has_active_consent)

    @property
    def withdrawn_consents(self) -> int:
        """Organisations where every remaining consent has been withdrawn."""
        return sum(
            1 for c in self.consents
            if c.has_withdrawn_consent and not c.has_active_consent
        )

    @property
    def expiring_consents(self) -> int:
        return sum(1 for c in self.consents if c.has_expiring_consent)

    @property
    def expired_consents(self) -> int:
        return sum(1 for c in self.consents if c.has_expired_consent)

    @property
    def urgent_renewals(self) -> int:
        return sum(c.urgent_renewals for c in self.consents)


def _earliest(moments: Iterable[datetime]) -> datetime | None:
    return min(moments, key=as_utc, default=None)


def _latest(moments: Iterable[datetime]) -> datetime | None:
    return max(moments, key=as_utc, default=None)


def _summarize_organization(
    submissions: list[Submission], now: datetime
) -> OrganizationConsent:
    evaluated: list[tuple[Submission, ConsentStatusResult]] = [
        (s, calculate_status(s.consent, now)) for s in submissions
    ]
    statuses = [result.status for _, result in evaluated]
    counts = Counter(statuses)

    withdrawn = [s for s, r in evaluated if r.status == ConsentStatus.WITHDRAWN]
    categories = dict.fromkeys(c for s in submissions for c in s.data_categories)
    first = submissions[0]

    return OrganizationConsent(
        organization_id=first.organization_id,
        organization_name=first.organization_name,
        has_active_consent=any(s in _ACTIVE for s in statuses),
        has_withdrawn_consent=bool(withdrawn),
        has_expiring_consent=ConsentStatus.EXPIRING in counts,
        has_expired_consent=any(s in _EXPIRED for s in statuses),
        consent_statuses=dict(counts),
        earliest_expiry=_earliest(
            r.expires_at for _, r in evaluated if r.is_accessible and r.expires_at
        ),
        urgent_renewals=sum(1 for _, r in evaluated if r.renewal_urgency in _URGENT),
        first_consent_at=_earliest(s.consent_at for s in submissions if s.consent_at),
        last_consent_at=_latest(s.consent_at for s in submissions if s.consent_at),
        withdrawn_at=_latest(s.consent_withdrawn_at for s in withdrawn),
        total_submissions=len(submissions),
        active_submissions=sum(1 for s in statuses if s in _ACTIVE),
        withdrawn_submissions=len(withdrawn),
        expiring_submissions=counts[ConsentStatus.EXPIRING],
        expired_submissions=sum(1 for s in statuses if s in _EXPIRED),
        data_categories=list(categories),
    )


def _last_activity(consent: OrganizationConsent) -> float:
    moment = consent.last_consent_at or consent.withdrawn_at
    return as_utc(moment).timestamp() if moment else float("-inf")


def summarize_consents(
    submissions: Iterable[Submission], now: datetime | None = None
) -> ConsentSummary:
    """Group a patient's consented submissions by organisation, most recent first."""
    now = now or utcnow()
    by_org: dict[str, list[Submission]] = {}
    for submission in submissions:
        if not submission.consent_given:
            continue
        by_org.setdefault(submission.organization_id, []).append(submission)

    consents = [_summarize_organization(subs, now) for subs in by_org.values()]
    consents.sort(key=_last_activity, reverse=True)
    return ConsentSummary(consents=consents)
