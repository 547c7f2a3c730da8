"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from chkin.config import settings
from chkin.consent.history import dump_history, load_history
from chkin.consent.status import (
    DEFAULT_GRACE_PERIOD_DAYS,
    ConsentRecord,
    ConsentStatus,
    ConsentStatusResult,
    RenewalUrgency,
    RenewedBy,
    badge_for,
)
from chkin.models.submission import Submission

# About ten years
MAX_GRACE_PERIOD_DAYS = 3650


# ---------------------------------------------------------------------------
# Consent status
# ---------------------------------------------------------------------------

class ConsentRecordIn(BaseModel):
    """The consent fields of a submission, as stored by the data layer."""
    consent_given: bool = False
    consent_at: datetime | None = None
    consent_expires_at: datetime | None = None
    consent_withdrawn_at: datetime | None = None
    grace_period_days: int = Field(DEFAULT_GRACE_PERIOD_DAYS, ge=0, le=MAX_GRACE_PERIOD_DAYS)

    def to_domain(self) -> ConsentRecord:
        return ConsentRecord(**self.model_dump(include=set(ConsentRecordIn.model_fields)))


class StatusRequest(ConsentRecordIn):
    now: datetime | None = None


class BadgeResponse(BaseModel):
    status: ConsentStatus
    label: str
    color: str
    icon: str

    @classmethod
    def for_status(cls, status: ConsentStatus) -> BadgeResponse:
        badge = badge_for(status)
        return cls(status=status, label=badge.label, color=badge.color, icon=badge.icon)


class StatusResponse(BaseModel):
    status: ConsentStatus
    is_accessible: bool
    message: str
    days_remaining: int | None
    expires_at: datetime | None
    grace_period_ends_at: datetime | None
    can_renew: bool
    renewal_urgency: RenewalUrgency
    badge: BadgeResponse

    @classmethod
    def from_result(cls, result: ConsentStatusResult) -> StatusResponse:
        return cls(
            status=result.status,
            is_accessible=result.is_accessible,
            message=result.message,
            days_remaining=result.days_remaining,
            expires_at=result.expires_at,
            grace_period_ends_at=result.grace_period_ends_at,
            can_renew=result.can_renew,
            renewal_urgency=result.renewal_urgency,
            badge=BadgeResponse.for_status(result.status),
        )


# ---------------------------------------------------------------------------
# Expiry and renewal dates
# ---------------------------------------------------------------------------

class ExpiryRequest(BaseModel):
    consent_at: datetime
    duration_months: int = Field(settings.DEFAULT_CONSENT_DURATION_MONTHS, ge=1)


class ExpiryResponse(BaseModel):
    expires_at: datetime


class RenewalHistoryEntryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    renewed_at: datetime
    previous_expires_at: datetime
    new_expires_at: datetime
    renewed_by: RenewedBy
    duration_months: int = Field(..., ge=1)


class RenewalExpiryRequest(BaseModel):
    current_expires_at: datetime
    duration_months: int = Field(settings.DEFAULT_CONSENT_DURATION_MONTHS, ge=1)
    renewed_by: RenewedBy = RenewedBy.PATIENT
    now: datetime | None = None


class RenewalExpiryResponse(BaseModel):
    new_expires_at: datetime
    entry: RenewalHistoryEntryModel


# ---------------------------------------------------------------------------
# Submission snapshots
# ---------------------------------------------------------------------------

class SubmissionModel(BaseModel):
    """A consent-bearing submission, exchanged in full with the data layer."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    organization_name: str = ""
    form_title: str = ""
    patient_email: str | None = None
    patient_name: str | None = None
    consent_given: bool = False
    consent_at: datetime | None = None
    consent_expires_at: datetime | None = None
    consent_withdrawn_at: datetime | None = None
    withdrawal_reason: str | None = None
    grace_period_days: int = Field(DEFAULT_GRACE_PERIOD_DAYS, ge=0, le=MAX_GRACE_PERIOD_DAYS)
    consent_duration_months: int | None = Field(None, ge=1)
    auto_renew: bool = False
    allow_auto_renewal: bool = True
    default_consent_duration: int = Field(
        settings.DEFAULT_CONSENT_DURATION_MONTHS, ge=1
    )
    renewal_count: int = Field(0, ge=0)
    renewed_at: datetime | None = None
    # JSON text, as stored in the renewal history column
    renewal_history: str | None = None
    sent_notifications: list[str] = []
    data_categories: list[str] = []

    def to_domain(self) -> Submission:
        fields = self.model_dump(
            exclude={"renewal_history", "sent_notifications", "data_categories"}
        )
        return Submission(
            **fields,
            renewal_history=tuple(load_history(self.renewal_history)),
            sent_notifications=frozenset(self.sent_notifications),
            data_categories=tuple(self.data_categories),
        )

    @classmethod
    def from_domain(cls, submission: Submission) -> SubmissionModel:
        return cls.model_validate(
            {
                **{name: getattr(submission, name) for name in cls.model_fields},
                "renewal_history": (
                    dump_history(submission.renewal_history)
                    if submission.renewal_history
                    else None
                ),
                "sent_notifications": sorted(submission.sent_notifications),
                "data_categories": list(submission.data_categories),
            }
        )


class WithdrawRequest(BaseModel):
    submission: SubmissionModel
    reason: str | None = Field(None, max_length=1000)
    now: datetime | None = None


class RenewRequest(BaseModel):
    submission: SubmissionModel
    renewed_by: RenewedBy = RenewedBy.PATIENT
    duration_months: int | None = Field(None, ge=1)
    now: datetime | None = None


class TransitionResponse(BaseModel):
    submission: SubmissionModel
    consent: StatusResponse


class SubmissionBatch(BaseModel):
    """Submissions to run a job or summary over."""
    submissions: list[SubmissionModel] = Field(..., max_length=1000)
    now: datetime | None = None


# ---------------------------------------------------------------------------
# Patient consent summary
# ---------------------------------------------------------------------------

class StatusCount(BaseModel):
    status: ConsentStatus
    count: int


class OrganizationConsentResponse(BaseModel):
    organization_id: str
    organization_name: str
    has_active_consent: bool
    has_withdrawn_consent: bool
    has_expiring_consent: bool
    has_expired_consent: bool
    consent_statuses: list[StatusCount]
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
    data_categories: list[str]


class SummaryTotals(BaseModel):
    total_organizations: int
    active_consents: int
    withdrawn_consents: int
    expiring_consents: int
    expired_consents: int
    urgent_renewals: int


class ConsentSummaryResponse(BaseModel):
    consents: list[OrganizationConsentResponse]
    summary: SummaryTotals


# ---------------------------------------------------------------------------
# Scheduled jobs
# ---------------------------------------------------------------------------

class NotificationRecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    submission_id: str
    patient_email: str
    days_remaining: int
    notification_type: str
    sent: bool
    error: str | None = None


class ExpiryJobResponse(BaseModel):
    success: bool = True
    dry_run: bool
    processed: int
    sent: int
    failed: int
    notifications: list[NotificationRecordModel]


class RenewalRecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    submission_id: str
    patient_email: str
    previous_expires_at: datetime
    new_expires_at: datetime
    renewed: bool
    error: str | None = None


class AutoRenewJobResponse(BaseModel):
    success: bool = True
    dry_run: bool
    processed: int
    renewed: int
    failed: int
    renewals: list[RenewalRecordModel]
    updated: list[SubmissionModel]


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
