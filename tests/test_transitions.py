"""Tests for consent withdrawal and renewal on submission snapshots."""

import logging
from datetime import datetime, timezone

import pytest

from chkin.consent.status import ConsentStatus, RenewedBy, calculate_status
from chkin.consent.transitions import ConsentTransitionError, renew, withdraw
from chkin.models.submission import Submission

UTC = timezone.utc
NOW = datetime(2024, 6, 15, tzinfo=UTC)


def _make_submission(**overrides):
    fields = {
        "id": "sub-1",
        "organization_id": "org-1",
        "organization_name": "Sunrise Clinic",
        "form_title": "New patient intake",
        "patient_email": "jane@example.com",
        "patient_name": "Jane Doe",
        "consent_given": True,
        "consent_at": datetime(2024, 1, 1, tzinfo=UTC),
        "consent_expires_at": datetime(2024, 7, 1, tzinfo=UTC),
        "consent_duration_months": 6,
    }
    fields.update(overrides)
    return Submission(**fields)


def test_withdraw_sets_date_and_reason():
    original = _make_submission()
    withdrawn = withdraw(original, "Moving provinces", now=NOW)

    assert withdrawn.consent_withdrawn_at == NOW
    assert withdrawn.withdrawal_reason == "Moving provinces"
    assert calculate_status(withdrawn.consent, NOW).status == ConsentStatus.WITHDRAWN
    # snapshot passed in is untouched
    assert original.consent_withdrawn_at is None


def test_withdraw_without_consent_fails():
    with pytest.raises(ConsentTransitionError, match="No consent to withdraw"):
        withdraw(_make_submission(consent_given=False), now=NOW)


def test_withdraw_twice_fails():
    withdrawn = withdraw(_make_submission(), now=NOW)
    with pytest.raises(ConsentTransitionError, match="already withdrawn"):
        withdraw(withdrawn, now=NOW)


def test_withdraw_is_audited(caplog):
    caplog.set_level(logging.INFO, logger="chkin.services.audit")
    withdraw(_make_submission(), now=NOW)
    assert "AUDIT: patient WITHDRAW_CONSENT Submission/sub-1" in caplog.text


def test_renew_extends_from_current_expiry():
    renewed = renew(_make_submission(), RenewedBy.PATIENT, now=NOW)

    assert renewed.consent_expires_at == datetime(2025, 1, 1, tzinfo=UTC)
    assert renewed.renewal_count == 1
    assert renewed.renewed_at == NOW

    (entry,) = renewed.renewal_history
    assert entry.previous_expires_at == datetime(2024, 7, 1, tzinfo=UTC)
    assert entry.new_expires_at == datetime(2025, 1, 1, tzinfo=UTC)
    assert entry.renewed_by == RenewedBy.PATIENT
    assert entry.duration_months == 6
    assert entry.renewed_at == NOW


def test_renew_falls_back_to_form_default_duration():
    submission = _make_submission(consent_duration_months=None, default_consent_duration=12)
    renewed = renew(submission, "provider", now=NOW)
    assert renewed.consent_expires_at == datetime(2025, 7, 1, tzinfo=UTC)


def test_renew_with_explicit_duration():
    renewed = renew(_make_submission(), "patient", duration_months=3, now=NOW)
    assert renewed.consent_expires_at == datetime(2024, 10, 1, tzinfo=UTC)
    assert renewed.renewal_history[0].duration_months == 3


def test_repeated_renewals_compound_and_keep_history_order():
    once = renew(_make_submission(), "patient", now=NOW)
    twice = renew(once, "auto", now=datetime(2024, 12, 28, tzinfo=UTC))

    assert twice.consent_expires_at == datetime(2025, 7, 1, tzinfo=UTC)
    assert twice.renewal_count == 2
    assert [e.renewed_by for e in twice.renewal_history] == [
        RenewedBy.PATIENT,
        RenewedBy.AUTO,
    ]


def test_expired_consent_can_be_renewed():
    now = datetime(2024, 9, 1, tzinfo=UTC)
    submission = _make_submission()
    assert calculate_status(submission.consent, now).status == ConsentStatus.EXPIRED

    renewed = renew(submission, "patient", now=now)
    assert calculate_status(renewed.consent, now).status == ConsentStatus.ACTIVE


def test_renew_withdrawn_consent_fails():
    withdrawn = withdraw(_make_submission(), now=NOW)
    with pytest.raises(ConsentTransitionError, match="Withdrawn consent"):
        renew(withdrawn, "patient", now=NOW)


def test_renew_perpetual_consent_fails():
    with pytest.raises(ConsentTransitionError, match="no expiry"):
        renew(_make_submission(consent_expires_at=None), "patient", now=NOW)


def test_renew_without_consent_fails():
    with pytest.raises(ConsentTransitionError, match="No consent to renew"):
        renew(_make_submission(consent_given=False), "patient", now=NOW)


def test_renew_rejects_unknown_actor():
    with pytest.raises(ValueError):
        renew(_make_submission(), "receptionist", now=NOW)


def test_renew_rejects_zero_month_duration():
    with pytest.raises(ConsentTransitionError, match="at least one month"):
        renew(_make_submission(), "patient", duration_months=0, now=NOW)
