from datetime import date, timedelta

from sqlalchemy import select

from fitnudge.reminders.dedup import DedupGuard
from fitnudge.reminders.models import NotificationLog
from tests.conftest import utc

KOLKATA = "Asia/Kolkata"


def rows(db):
    return list(db.execute(select(NotificationLog)).scalars())


def test_second_claim_on_same_day_loses(db):
    guard = DedupGuard()
    now = utc(2026, 3, 2, 8, 0)
    assert guard.claim(db, "u1", "good_morning", now, KOLKATA) is not None
    assert guard.claim(db, "u1", "good_morning", now + timedelta(minutes=1), KOLKATA) is None
    assert guard.already_sent(db, "u1", "good_morning", now, KOLKATA)
    assert len(rows(db)) == 1


def test_claims_are_per_type_and_user(db):
    guard = DedupGuard()
    now = utc(2026, 3, 2, 8, 0)
    assert guard.claim(db, "u1", "good_morning", now, KOLKATA) is not None
    assert guard.claim(db, "u1", "good_night", now, KOLKATA) is not None
    assert guard.claim(db, "u2", "good_morning", now, KOLKATA) is not None


def test_day_boundary_follows_user_timezone(db):
    guard = DedupGuard()
    before_midnight = utc(2026, 3, 2, 18, 0)  # 23:30 local
    after_midnight = utc(2026, 3, 2, 19, 0)  # 00:30 next local day
    first = guard.claim(db, "u1", "water_reminder", before_midnight, KOLKATA)
    assert first.local_date == date(2026, 3, 2)
    assert not guard.already_sent(db, "u1", "water_reminder", after_midnight, KOLKATA)
    second = guard.claim(db, "u1", "water_reminder", after_midnight, KOLKATA)
    assert second.local_date == date(2026, 3, 3)


def test_release_frees_the_slot(db):
    guard = DedupGuard()
    now = utc(2026, 3, 2, 8, 0)
    claim = guard.claim(db, "u1", "good_morning", now, KOLKATA)
    guard.release(db, claim)
    assert not guard.already_sent(db, "u1", "good_morning", now, KOLKATA)
    assert guard.claim(db, "u1", "good_morning", now, KOLKATA) is not None


def test_stale_pending_claim_is_taken_over(db):
    guard = DedupGuard(stale_after_minutes=10)
    now = utc(2026, 3, 2, 8, 0)
    assert guard.claim(db, "u1", "good_morning", now, KOLKATA) is not None
    assert guard.claim(db, "u1", "good_morning", now + timedelta(minutes=5), KOLKATA) is None

    later = now + timedelta(minutes=11)
    assert not guard.already_sent(db, "u1", "good_morning", later, KOLKATA)
    assert guard.claim(db, "u1", "good_morning", later, KOLKATA) is not None
    assert guard.claim(db, "u1", "good_morning", later, KOLKATA) is None
    assert len(rows(db)) == 1


def test_confirmed_claim_never_goes_stale(db):
    guard = DedupGuard(stale_after_minutes=10)
    now = utc(2026, 3, 2, 8, 0)
    claim = guard.claim(db, "u1", "good_morning", now, KOLKATA)
    log = guard.confirm(db, claim, "Hello", "Body", {"success_count": 1, "failure_count": 0}, now)
    assert log.status == "sent"
    assert log.details == {"success_count": 1, "failure_count": 0}

    later = now + timedelta(hours=3)
    assert guard.already_sent(db, "u1", "good_morning", later, KOLKATA)
    assert guard.claim(db, "u1", "good_morning", later, KOLKATA) is None


def test_record_writes_a_sent_row_once(db):
    guard = DedupGuard()
    now = utc(2026, 3, 2, 8, 0)
    log = guard.record(db, "u1", "good_morning", "Hi", "Body", {}, now, KOLKATA)
    assert log.status == "sent"
    assert guard.record(db, "u1", "good_morning", "Hi", "Body", {}, now, KOLKATA) is None
    assert len(rows(db)) == 1
