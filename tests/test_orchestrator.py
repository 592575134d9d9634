from datetime import date, timedelta

import pytest
from sqlalchemy import select

from fitnudge.reminders.errors import ConfigFetchError
from fitnudge.reminders.models import MealDayRecord, NotificationLog, NotificationPolicy
from fitnudge.reminders.orchestrator import ReminderOrchestrator
from fitnudge.reminders.reconciler import MealReconciler
from tests.conftest import FakeClock, FakeSender, utc

LUNCH_TICK = utc(2026, 3, 2, 8, 40)  # 14:10 in Kolkata


@pytest.fixture
def lunch_setup(make_user, make_policy):
    make_policy(
        "meal_reminder_lunch",
        title_template="{mealEmoji} {mealLabel} time, {name}!",
        body_template="Did you have your {mealLabel}?",
    )
    return make_user(lunch_time="13:00")


def logs(db):
    return list(db.execute(select(NotificationLog)).scalars())


def test_overdue_lunch_is_sent_once(db, session_factory, lunch_setup):
    sender = FakeSender()
    orchestrator = ReminderOrchestrator(session_factory, sender)

    summary = orchestrator.run_tick(now=LUNCH_TICK)
    assert summary.success
    assert summary.total_sent == 1
    assert summary.total_users == 1
    assert summary.results[0].type == "meal_reminder_lunch"
    assert summary.results[0].sent == 1

    call = sender.calls[0]
    assert call["title"] == "🍱 Lunch time, Asha!"
    assert call["data"]["meal_type"] == "lunch"
    assert call["data"]["date"] == "2026-03-02"
    assert call["data"]["action"] == "open_meals"

    again = orchestrator.run_tick(now=LUNCH_TICK + timedelta(minutes=10))
    assert again.total_sent == 0
    assert len(sender.calls) == 1
    assert len(logs(db)) == 1

    record = db.execute(select(MealDayRecord)).scalars().one()
    assert record.date == date(2026, 3, 2)
    assert record.notified_at("lunch") is not None
    db.expire_all()
    policy = db.execute(select(NotificationPolicy)).scalars().one()
    assert policy.last_fired_at is not None


def test_completed_lunch_is_not_sent(db, session_factory, lunch_setup):
    MealReconciler().mark_completed(db, lunch_setup.user_id, "lunch", date(2026, 3, 2))
    sender = FakeSender()
    summary = ReminderOrchestrator(session_factory, sender).run_tick(now=LUNCH_TICK)
    assert summary.total_sent == 0
    assert sender.calls == []
    assert logs(db) == []


def test_wrong_hour_sends_nothing(session_factory, lunch_setup):
    sender = FakeSender()
    summary = ReminderOrchestrator(session_factory, sender).run_tick(now=LUNCH_TICK + timedelta(hours=2))
    assert summary.total_sent == 0
    assert summary.results[0].errors == []


def test_user_without_endpoints(db, session_factory, make_user, make_policy):
    make_policy("good_morning")
    make_user(tokens=())
    summary = ReminderOrchestrator(session_factory, FakeSender()).run_tick(now=utc(2026, 3, 2, 1, 45))
    assert summary.total_sent == 0
    assert summary.results[0].no_endpoints == 1
    assert logs(db) == []


def test_pair_errors_are_isolated(db, session_factory, make_user, make_policy):
    make_policy("good_morning")
    make_user("u1")
    make_user("u2", tokens=("tok-2",))
    sender = FakeSender(raises=RuntimeError("provider exploded"))

    summary = ReminderOrchestrator(session_factory, sender).run_tick(now=utc(2026, 3, 2, 1, 45))
    assert summary.success
    assert summary.total_sent == 0
    assert len(summary.results[0].errors) == 2
    assert "provider exploded" in summary.results[0].errors[0]
    assert len(summary.errors) == 2
    # claims are released so the next tick retries
    assert logs(db) == []


def test_delivery_failure_releases_claim(db, session_factory, make_user, make_policy):
    make_policy("good_morning")
    make_user()
    orchestrator = ReminderOrchestrator(session_factory, FakeSender(fail=True))
    summary = orchestrator.run_tick(now=utc(2026, 3, 2, 1, 45))
    assert len(summary.errors) == 1
    assert logs(db) == []

    retry = ReminderOrchestrator(session_factory, FakeSender()).run_tick(now=utc(2026, 3, 2, 1, 50))
    assert retry.total_sent == 1


def test_deadline_truncates_and_next_tick_resumes(db, session_factory, make_user, make_policy):
    make_policy("good_morning")
    for n in range(3):
        make_user(f"u{n}", tokens=(f"tok-{n}",))
    now = utc(2026, 3, 2, 1, 45)

    sender = FakeSender()
    first = ReminderOrchestrator(
        session_factory, sender, deadline_seconds=8.0, monotonic=FakeClock(step=5.0),
    ).run_tick(now=now)
    assert first.truncated
    assert first.skipped == 2
    assert first.total_sent == 1

    second = ReminderOrchestrator(session_factory, sender).run_tick(now=now + timedelta(minutes=5))
    assert not second.truncated
    assert second.total_sent == 2
    assert len(sender.calls) == 3
    assert len(logs(db)) == 3


def test_disabled_policies_and_users_are_ignored(session_factory, make_user, make_policy):
    make_policy("good_morning", is_enabled=False)
    make_policy("feedback_request", is_active=False)
    make_user(notifications_enabled=False)
    sender = FakeSender()
    summary = ReminderOrchestrator(session_factory, sender).run_tick(now=utc(2026, 3, 2, 1, 45))
    assert summary.total_users == 0
    assert summary.results == []
    assert sender.calls == []


def test_policy_fetch_failure_is_reported():
    def broken_factory():
        raise RuntimeError("database unavailable")

    with pytest.raises(ConfigFetchError):
        ReminderOrchestrator(broken_factory, FakeSender()).run_tick(now=utc(2026, 3, 2, 1, 45))


def test_multiple_policies_one_user(session_factory, make_user, make_policy):
    make_policy("good_morning")
    make_policy("water_reminder", repeat_pattern="hourly")
    make_user(timezone="UTC")
    sender = FakeSender()
    summary = ReminderOrchestrator(session_factory, sender).run_tick(now=utc(2026, 3, 2, 7, 5))
    by_type = {r.type: r.sent for r in summary.results}
    assert by_type == {"good_morning": 1, "water_reminder": 0}
    assert summary.total_sent == 1
