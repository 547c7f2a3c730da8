"""Tests for the per-organisation patient consent summary."""

from datetime import datetime, timezone

from chkin.consent.status import ConsentStatus
from chkin.models.submission import Submission
from chkin.services.summary import summarize_consents

UTC = timezone.utc
NOW = datetime(2024, 6, 15, tzinfo=UTC)


def _make_submission(sub_id, org_id, org_name, **overrides):
    fields = {
        "id": sub_id,
        "organization_id": org_id,
        "organization_name": org_name,
        "consent_given": True,
        "consent_at": datetime(2024, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return Submission(**fields)


def _patient_submissions():
    return [
        # Sunrise Clinic: expiring soon, withdrawn, active
        _make_submission(
            "a1", "org-a", "Sunrise Clinic",
            consent_at=datetime(2023, 12, 20, tzinfo=UTC),
            consent_expires_at=datetime(2024, 6, 20, tzinfo=UTC),
            data_categories=("medical", "contact"),
        ),
        _make_submission(
            "a2", "org-a", "Sunrise Clinic",
            consent_at=datetime(2024, 2, 1, tzinfo=UTC),
            consent_withdrawn_at=datetime(2024, 3, 1, tzinfo=UTC),
            data_categories=("contact", "insurance"),
        ),
        _make_submission(
            "a3", "org-a", "Sunrise Clinic",
            consent_expires_at=datetime(2025, 1, 1, tzinfo=UTC),
        ),
        # Harbour Dental: expired, in grace
        _make_submission(
            "b1", "org-b", "Harbour Dental",
            consent_at=datetime(2023, 1, 1, tzinfo=UTC),
            consent_expires_at=datetime(2023, 7, 1, tzinfo=UTC),
        ),
        _make_submission(
            "b2", "org-b", "Harbour Dental",
            consent_at=datetime(2023, 12, 1, tzinfo=UTC),
            consent_expires_at=datetime(2024, 6, 1, tzinfo=UTC),
        ),
        # never consented: not part of the overview
        _make_submission("c1", "org-c", "Lakeside Pharmacy", consent_given=False),
    ]


def test_groups_by_organisation_most_recent_first():
    summary = summarize_consents(_patient_submissions(), now=NOW)

    assert [c.organization_id for c in summary.consents] == ["org-a", "org-b"]
    assert summary.total_organizations == 2


def test_organisation_counts():
    sunrise, harbour = summarize_consents(_patient_submissions(), now=NOW).consents

    assert sunrise.consent_statuses == {
        ConsentStatus.EXPIRING: 1,
        ConsentStatus.WITHDRAWN: 1,
        ConsentStatus.ACTIVE: 1,
    }
    assert sunrise.has_active_consent and sunrise.has_withdrawn_consent
    assert sunrise.has_expiring_consent and not sunrise.has_expired_consent
    assert sunrise.active_submissions == 2
    assert sunrise.withdrawn_submissions == 1
    assert sunrise.urgent_renewals == 1
    assert sunrise.earliest_expiry == datetime(2024, 6, 20, tzinfo=UTC)
    assert sunrise.first_consent_at == datetime(2023, 12, 20, tzinfo=UTC)
    assert sunrise.last_consent_at == datetime(2024, 2, 1, tzinfo=UTC)
    assert sunrise.withdrawn_at == datetime(2024, 3, 1, tzinfo=UTC)
    assert sunrise.data_categories == ["medical", "contact", "insurance"]

    assert harbour.consent_statuses == {ConsentStatus.EXPIRED: 1, ConsentStatus.GRACE: 1}
    assert not harbour.has_active_consent
    assert harbour.has_expired_consent
    assert harbour.expired_submissions == 2
    assert harbour.urgent_renewals == 2
    # only the submission still in grace is accessible
    assert harbour.earliest_expiry == datetime(2024, 6, 1, tzinfo=UTC)
    assert harbour.withdrawn_at is None


def test_summary_totals():
    summary = summarize_consents(_patient_submissions(), now=NOW)

    assert summary.active_consents == 1
    assert summary.withdrawn_consents == 0
    assert summary.expiring_consents == 1
    assert summary.expired_consents == 1
    assert summary.urgent_renewals == 3


def test_withdrawn_only_organisation_counts_as_withdrawn():
    submissions = [
        _make_submission(
            "w1", "org-w", "Westside Physio",
            consent_withdrawn_at=datetime(2024, 4, 1, tzinfo=UTC),
        )
    ]
    summary = summarize_consents(submissions, now=NOW)
    assert summary.withdrawn_consents == 1
    assert summary.active_consents == 0


def test_no_submissions():
    summary = summarize_consents([], now=NOW)
    assert summary.consents == []
    assert summary.urgent_renewals == 0
