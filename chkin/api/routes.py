"""
FastAPI routes for consent lifecycle evaluation.

The data layer owns the submissions; these endpoints take snapshots of
them, evaluate or change consent, and hand the results back to persist.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from chkin.config import settings
from chkin.consent.history import RenewalHistoryError
from chkin.consent.status import (
    ConsentStatus,
    calculate_expiry,
    calculate_renewal_expiry,
    calculate_status,
    record_renewal,
)
from chkin.consent.transitions import ConsentTransitionError, renew, withdraw
from chkin.jobs.auto_renew import run_auto_renewals
from chkin.jobs.expiry_notifications import run_expiry_notifications
from chkin.models.submission import Submission
from chkin.schemas.api import (
    AutoRenewJobResponse,
    BadgeResponse,
    ConsentSummaryResponse,
    ExpiryJobResponse,
    ExpiryRequest,
    ExpiryResponse,
    HealthResponse,
    NotificationRecordModel,
    OrganizationConsentResponse,
    RenewalExpiryRequest,
    RenewalExpiryResponse,
    RenewalHistoryEntryModel,
    RenewalRecordModel,
    RenewRequest,
    StatusCount,
    StatusRequest,
    StatusResponse,
    SubmissionBatch,
    SubmissionModel,
    SummaryTotals,
    TransitionResponse,
    WithdrawRequest,
)
from chkin.services.notifier import LoggingNotifier, Notifier
from chkin.services.summary import summarize_consents

logger = logging.getLogger(__name__)

router = APIRouter()


def get_notifier() -> Notifier:
    return LoggingNotifier()


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Cron endpoints need the shared bearer secret in production."""
    if settings.ENVIRONMENT != "production":
        return
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(status_code=500, detail="Cron job not configured")
    expected = f"Bearer {settings.CRON_SECRET}"
    if not hmac.compare_digest(authorization or "", expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _load_submission(model: SubmissionModel) -> Submission:
    try:
        return model.to_domain()
    except RenewalHistoryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _load_batch(batch: SubmissionBatch) -> list[Submission]:
    return [_load_submission(s) for s in batch.submissions]


def _transition_response(submission: Submission, now) -> TransitionResponse:
    return TransitionResponse(
        submission=SubmissionModel.from_domain(submission),
        consent=StatusResponse.from_result(calculate_status(submission.consent, now)),
    )


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check():
    return HealthResponse(environment=settings.ENVIRONMENT)


# ---------------------------------------------------------------------------
# Consent status and dates
# ---------------------------------------------------------------------------

@router.post("/consent/status", response_model=StatusResponse)
def consent_status(request: StatusRequest):
    """Evaluate one consent record, at ``now`` if given."""
    result = calculate_status(request.to_domain(), request.now)
    return StatusResponse.from_result(result)


@router.get("/consent/badges", response_model=list[BadgeResponse])
def consent_badges():
    return [BadgeResponse.for_status(status) for status in ConsentStatus]


@router.post("/consent/expiry", response_model=ExpiryResponse)
def consent_expiry(request: ExpiryRequest):
    try:
        expires_at = calculate_expiry(request.consent_at, request.duration_months)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Expiry date out of range")
    return ExpiryResponse(expires_at=expires_at)


@router.post("/consent/renewal-expiry", response_model=RenewalExpiryResponse)
def consent_renewal_expiry(request: RenewalExpiryRequest):
    """New expiry counted from the current one, plus the history entry to append."""
    try:
        new_expires_at = calculate_renewal_expiry(
            request.current_expires_at, request.duration_months
        )
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Expiry date out of range")
    entry = record_renewal(
        request.current_expires_at,
        new_expires_at,
        request.renewed_by,
        request.duration_months,
        now=request.now,
    )
    return RenewalExpiryResponse(
        new_expires_at=new_expires_at,
        entry=RenewalHistoryEntryModel.model_validate(entry),
    )


# ---------------------------------------------------------------------------
# Consent transitions
# ---------------------------------------------------------------------------

@router.post("/consent/withdraw", response_model=TransitionResponse)
def consent_withdraw(request: WithdrawRequest):
    submission = _load_submission(request.submission)
    try:
        withdrawn = withdraw(submission, request.reason, now=request.now)
    except ConsentTransitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _transition_response(withdrawn, request.now)


@router.post("/consent/renew", response_model=TransitionResponse)
def consent_renew(request: RenewRequest):
    submission = _load_submission(request.submission)
    try:
        renewed = renew(
            submission,
            request.renewed_by,
            request.duration_months,
            now=request.now,
        )
    except ConsentTransitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Expiry date out of range")
    return _transition_response(renewed, request.now)


# ---------------------------------------------------------------------------
# Patient consent overview
# ---------------------------------------------------------------------------

@router.post("/patient/consents", response_model=ConsentSummaryResponse)
def patient_consents(batch: SubmissionBatch):
    """A patient's consents grouped by organisation."""
    summary = summarize_consents(
        _load_batch(batch), now=batch.now
    )
    consents = [
        OrganizationConsentResponse(
            **{
                **vars(org),
                "consent_statuses": [
                    StatusCount(status=status, count=count)
                    for status, count in org.consent_statuses.items()
                ],
            }
        )
        for org in summary.consents
    ]
    return ConsentSummaryResponse(
        consents=consents,
        summary=SummaryTotals(
            total_organizations=summary.total_organizations,
            active_consents=summary.active_consents,
            withdrawn_consents=summary.withdrawn_consents,
            expiring_consents=summary.expiring_consents,
            expired_consents=summary.expired_consents,
            urgent_renewals=summary.urgent_renewals,
        ),
    )


# ---------------------------------------------------------------------------
# Scheduled jobs
# ---------------------------------------------------------------------------

@router.post(
    "/cron/consent-expiry",
    response_model=ExpiryJobResponse,
    dependencies=[Depends(require_cron_secret)],
)
def cron_consent_expiry(
    batch: SubmissionBatch,
    dry_run: bool = Query(False, alias="dryRun"),
    notifier: Notifier = Depends(get_notifier),
):
    """Send due expiry warnings; the returned keys are to be stored as sent."""
    report = run_expiry_notifications(
        _load_batch(batch),
        now=batch.now,
        dry_run=dry_run,
        notifier=notifier,
    )
    return ExpiryJobResponse(
        dry_run=report.dry_run,
        processed=report.processed,
        sent=report.sent,
        failed=report.failed,
        notifications=[
            NotificationRecordModel.model_validate(n) for n in report.notifications
        ],
    )


@router.post(
    "/cron/consent-auto-renew",
    response_model=AutoRenewJobResponse,
    dependencies=[Depends(require_cron_secret)],
)
def cron_consent_auto_renew(
    batch: SubmissionBatch,
    dry_run: bool = Query(False, alias="dryRun"),
    notifier: Notifier = Depends(get_notifier),
):
    """Auto-renew eligible consents; ``updated`` holds the snapshots to persist."""
    report = run_auto_renewals(
        _load_batch(batch),
        now=batch.now,
        dry_run=dry_run,
        notifier=notifier,
    )
    return AutoRenewJobResponse(
        dry_run=report.dry_run,
        processed=report.processed,
        renewed=report.renewed,
        failed=report.failed,
        renewals=[RenewalRecordModel.model_validate(r) for r in report.renewals],
        updated=[SubmissionModel.from_domain(s) for s in report.updated],
    )
