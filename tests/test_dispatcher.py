import pytest
from sqlalchemy import select

from fitnudge.reminders import repository
from fitnudge.reminders.dedup import DedupGuard
from fitnudge.reminders.dispatcher import DeliveryDispatcher
from fitnudge.reminders.errors import DeliveryFailure, NoEndpointsError
from fitnudge.reminders.models import NotificationLog
from fitnudge.reminders.push import SendResult
from tests.conftest import FakeSender, utc

NOW = utc(2026, 3, 2, 3, 30)  # 09:00 in Kolkata


def deliver(db, sender, prefs, **kwargs):
    dispatcher = DeliveryDispatcher(sender, DedupGuard())
    return dispatcher.deliver(db, prefs, "good_morning", "Morning {name}", "It is {currentTime}", NOW, **kwargs)


def test_no_endpoints(db, make_user):
    sender = FakeSender()
    prefs = make_user(tokens=())
    with pytest.raises(NoEndpointsError):
        deliver(db, sender, prefs)
    assert sender.calls == []


def test_successful_delivery_logs_once(db, make_user):
    sender = FakeSender()
    prefs = make_user(tokens=("tok-1", "tok-2"))
    result = deliver(db, sender, prefs)

    assert result.title == "Morning Asha"
    assert result.body == "It is 09:00:00"
    assert result.success_count == 2
    call = sender.calls[0]
    assert sorted(call["tokens"]) == ["tok-1", "tok-2"]
    assert call["data"]["type"] == "good_morning"
    assert call["data"]["action"] == "open_app"
    assert call["data"]["timestamp"] == NOW.isoformat()

    logs = list(db.execute(select(NotificationLog)).scalars())
    assert len(logs) == 1
    assert logs[0].status == "sent"
    assert logs[0].details == {"success_count": 2, "failure_count": 0}


def test_invalid_tokens_are_removed(db, make_user):
    sender = FakeSender(invalid={"tok-dead"})
    prefs = make_user(tokens=("tok-live", "tok-dead"))
    result = deliver(db, sender, prefs)

    assert result.success_count == 1
    assert result.failure_count == 1
    assert result.removed_endpoints == 1
    assert repository.list_endpoint_tokens(db, prefs.user_id) == ["tok-live"]


def test_all_endpoints_failing_raises_and_logs_nothing(db, make_user):
    sender = FakeSender(fail=True)
    prefs = make_user(tokens=("tok-1",))
    with pytest.raises(DeliveryFailure):
        deliver(db, sender, prefs)
    assert list(db.execute(select(NotificationLog)).scalars()) == []
    assert repository.list_endpoint_tokens(db, prefs.user_id) == ["tok-1"]


def test_only_invalid_tokens_is_a_failure(db, make_user):
    sender = FakeSender(invalid={"tok-1"})
    prefs = make_user(tokens=("tok-1",))
    with pytest.raises(DeliveryFailure):
        deliver(db, sender, prefs)
    assert repository.list_endpoint_tokens(db, prefs.user_id) == []


def test_extra_data_and_context(db, make_user):
    sender = FakeSender()
    prefs = make_user()
    deliver(db, sender, prefs, context={"name": "override"}, data={"meal_type": "lunch", "date": "2026-03-02"})
    call = sender.calls[0]
    assert call["title"] == "Morning override"
    assert call["data"]["meal_type"] == "lunch"
    assert call["data"]["date"] == "2026-03-02"


def test_existing_claim_is_confirmed(db, make_user):
    guard = DedupGuard()
    prefs = make_user()
    claim = guard.claim(db, prefs.user_id, "good_morning", NOW, prefs.timezone)
    result = DeliveryDispatcher(FakeSender(), guard).deliver(
        db, prefs, "good_morning", "t", "b", NOW, claim=claim,
    )
    assert result.log.id == claim.id
    assert result.log.status == "sent"


class PartialBatchSender(FakeSender):
    """First batch delivered, a later batch hit a transport error."""

    def send(self, tokens, title, body, data=None):
        super().send(tokens, title, body, data)
        return SendResult(success=False, success_count=1, failure_count=1, error="transport reset")


def test_partial_delivery_counts_as_sent(db, make_user):
    guard = DedupGuard()
    prefs = make_user(tokens=("tok-1", "tok-2"))
    claim = guard.claim(db, prefs.user_id, "good_morning", NOW, prefs.timezone)
    result = DeliveryDispatcher(PartialBatchSender(), guard).deliver(
        db, prefs, "good_morning", "t", "b", NOW, claim=claim,
    )

    assert result.success_count == 1
    assert result.log.id == claim.id
    assert result.log.status == "sent"
    assert result.log.details == {"success_count": 1, "failure_count": 1, "error": "transport reset"}
