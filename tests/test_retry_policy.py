from datetime import datetime, timedelta, timezone

from oral_exam.models.official_exam import OfficialExamSession
from oral_exam.services import retry_policy
from oral_exam.services.retry_policy import RetryStatus, days_until, format_retry_message, is_eligible

from conftest import USER_ID

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_never_taken_is_eligible():
    assert is_eligible(None, NOW, 14)


def test_exactly_at_cooldown_boundary_is_eligible():
    assert is_eligible(NOW - timedelta(days=14), NOW, 14)
    assert not is_eligible(NOW - timedelta(days=13, hours=23), NOW, 14)


def test_naive_timestamps_are_utc():
    naive = (NOW - timedelta(days=14)).replace(tzinfo=None)
    assert is_eligible(naive, NOW, 14)


def test_days_until_rounds_up_and_clamps():
    assert days_until(None, NOW) == 0
    assert days_until(NOW + timedelta(hours=1), NOW) == 1
    assert days_until(NOW + timedelta(days=3, hours=2), NOW) == 4
    assert days_until(NOW - timedelta(days=1), NOW) == 0


def _exam(db, completed_at, official=True, user_id=USER_ID):
    exam = OfficialExamSession(user_id=user_id, is_official=official, conversation_transcript=[], completed_at=completed_at)
    db.add(exam)
    db.commit()
    return exam


def test_status_uses_latest_official_completion(db):
    _exam(db, NOW - timedelta(days=30))
    _exam(db, NOW - timedelta(days=3))
    _exam(db, NOW - timedelta(days=1), official=False)
    _exam(db, None)

    status = retry_policy.get_retry_status(db, USER_ID, NOW, cooldown_days=14)
    assert not status.can_take_official
    assert status.total_official_exams == 2
    assert status.last_official_exam_at == NOW - timedelta(days=3)
    assert status.next_available_at == NOW + timedelta(days=11)
    assert status.days_until_next == 11
    assert retry_policy.can_take_official(db, USER_ID, NOW + timedelta(days=11), 14)


def test_days_until_next(db):
    assert retry_policy.days_until_next(db, USER_ID, NOW, cooldown_days=14) == 0

    _exam(db, NOW - timedelta(days=13, hours=12))
    assert retry_policy.days_until_next(db, USER_ID, NOW, cooldown_days=14) == 1
    assert retry_policy.days_until_next(db, USER_ID, NOW - timedelta(days=5), cooldown_days=14) == 6
    assert retry_policy.days_until_next(db, USER_ID, NOW + timedelta(days=1), cooldown_days=14) == 0


def test_status_for_new_user(db):
    status = retry_policy.get_retry_status(db, USER_ID, NOW, cooldown_days=14)
    assert status.can_take_official
    assert status.next_available_at is None
    assert status.days_until_next == 0
    assert status.total_official_exams == 0


def test_messages():
    def status(can, days, next_at=None):
        return RetryStatus(can, next_at, None, days, 1)

    assert format_retry_message(status(True, 0)) == "You can take an official assessment now"
    assert format_retry_message(status(False, 1)) == "Next official assessment available tomorrow"
    assert format_retry_message(status(False, 5)) == "Next official assessment available in 5 days"
    assert format_retry_message(status(False, 0, NOW)) == "Next official assessment: 2026-03-01"
    assert format_retry_message(status(False, 0)) == "Checking availability..."
