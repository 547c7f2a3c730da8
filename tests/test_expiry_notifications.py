"""Tests for the daily consent expiry notification job."""

from datetime import datetime, timedelta, timezone

from chkin.jobs.expiry_notifications import (
    expiry_subject,
    is_due,
    renewal_url,
    run_expiry_notifications,
)
from chkin.models.submission import Submission

UTC = timezone.utc
NOW = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


class RecordingNotifier:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, notification):
        if notification.submission_id in self.fail_for:
            raise RuntimeError("smtp down")
        self.sent.append(notification)
        return "msg-1"


def _make_submission(sub_id, expires_at, **overrides):
    fields = {
        "id": sub_id,
        "organization_id": "org-1",
        "organization_name": "Sunrise Clinic",
        "form_title": "New patient intake",
        "patient_email": f"{sub_id}@example.com",
        "patient_name": "Jane Doe",
        "consent_given": True,
        "consent_at": datetime(2024, 1, 1, tzinfo=UTC),
        "consent_expires_at": expires_at,
    }
    fields.update(overrides)
    return Submission(**fields)


def _batch():
    return [
        _make_submission("sub-30", datetime(2024, 7, 1, tzinfo=UTC)),
        _make_submission("sub-14", datetime(2024, 6, 15, 12, tzinfo=UTC)),
        _make_submission("sub-7", datetime(2024, 6, 8, tzinfo=UTC)),
        _make_submission("sub-1", datetime(2024, 6, 2, 23, 59, tzinfo=UTC)),
        _make_submission("sub-19", datetime(2024, 6, 20, tzinfo=UTC)),
    ]


def test_each_threshold_is_notified_once():
    notifier = RecordingNotifier()
    report = run_expiry_notifications(
        _batch(), now=NOW, notifier=notifier, base_url="https://chkin.example/"
    )

    assert report.processed == 4
    assert report.sent == 4
    assert report.failed == 0
    assert {(n.submission_id, n.notification_type) for n in report.notifications} == {
        ("sub-30", "expiry_30d"),
        ("sub-14", "expiry_14d"),
        ("sub-7", "expiry_7d"),
        ("sub-1", "expiry_1d"),
    }

    by_id = {n.submission_id: n for n in notifier.sent}
    assert by_id["sub-30"].subject.startswith("Notice:")
    assert by_id["sub-14"].subject.startswith("Reminder:")
    assert by_id["sub-1"].subject == "Urgent: Your consent with Sunrise Clinic expires in 1 days"
    assert by_id["sub-7"].link == "https://chkin.example/patient/submissions/sub-7"


def test_already_sent_warning_is_skipped():
    submission = _make_submission(
        "sub-30",
        datetime(2024, 7, 1, tzinfo=UTC),
        sent_notifications=frozenset({"expiry_30d"}),
    )
    report = run_expiry_notifications([submission], now=NOW, notifier=RecordingNotifier())
    assert report.processed == 0


def test_inactive_or_unreachable_consent_is_skipped():
    expires_at = datetime(2024, 7, 1, tzinfo=UTC)
    submissions = [
        _make_submission("withdrawn", expires_at, consent_withdrawn_at=NOW - timedelta(days=3)),
        _make_submission("no-email", expires_at, patient_email=None),
        _make_submission("never-given", expires_at, consent_given=False),
        _make_submission("perpetual", None),
    ]
    for submission in submissions:
        assert not is_due(submission, 30, NOW)

    report = run_expiry_notifications(submissions, now=NOW, notifier=RecordingNotifier())
    assert report.processed == 0


def test_dry_run_sends_nothing():
    notifier = RecordingNotifier()
    report = run_expiry_notifications(_batch()[:1], now=NOW, dry_run=True, notifier=notifier)

    assert notifier.sent == []
    assert report.processed == 1
    assert report.sent == 0
    assert report.failed == 0
    assert report.notifications[0].notification_type == "expiry_30d"


def test_failed_delivery_does_not_stop_the_job():
    notifier = RecordingNotifier(fail_for={"sub-7"})
    report = run_expiry_notifications(_batch(), now=NOW, notifier=notifier)

    assert report.sent == 3
    assert report.failed == 1
    failed = next(n for n in report.notifications if not n.sent)
    assert failed.submission_id == "sub-7"
    assert failed.error == "smtp down"


def test_target_day_follows_the_timezone_of_now():
    # 01:00 on 1 June at UTC+2 is still 31 May in UTC
    plus_two = timezone(timedelta(hours=2))
    now = datetime(2024, 6, 1, 1, 0, tzinfo=plus_two)
    submission = _make_submission("sub-local", datetime(2024, 6, 2, 10, tzinfo=UTC))

    assert is_due(submission, 1, now)
    assert not is_due(submission, 1, now.astimezone(UTC))


def test_subject_by_urgency():
    assert expiry_subject(30, "Acme").startswith("Notice: Your consent with Acme will expire in 30")
    assert expiry_subject(14, "Acme") == "Reminder: Your consent with Acme expires soon"
    assert expiry_subject(7, "Acme").startswith("Urgent:")


def test_renewal_url_uses_base_url():
    assert renewal_url("abc", "http://localhost:3000") == (
        "http://localhost:3000/patient/submissions/abc"
    )
