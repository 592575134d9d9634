"""Shared test fixtures for the reminder engine."""
import os

# Settings are read at import time
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["CRON_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "development"
os.environ["REMINDER_METRICS_ENABLED"] = "false"
os.environ["DEFAULT_TIMEZONE"] = "Asia/Kolkata"

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fitnudge.db.base import Base
from fitnudge.reminders import models  # noqa: F401
from fitnudge.reminders.models import DeviceEndpoint, NotificationPolicy, UserPreference
from fitnudge.reminders.push import PushSender, SendResult


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeSender(PushSender):
    """Records every send; tokens in `invalid` are rejected and reported invalid."""

    def __init__(self, invalid=(), fail: bool = False, raises: Optional[Exception] = None):
        self.invalid = set(invalid)
        self.fail = fail
        self.raises = raises
        self.calls: List[Dict] = []

    def send(self, tokens, title, body, data=None):
        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": dict(data or {})})
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return SendResult(success=False, failure_count=len(tokens), error="provider unavailable")
        bad = [t for t in tokens if t in self.invalid]
        ok = len(tokens) - len(bad)
        return SendResult(success=ok > 0, success_count=ok, failure_count=len(bad), invalid_tokens=bad)


class FakeClock:
    """Monotonic clock advancing by `step` seconds on every read."""

    def __init__(self, step: float = 0.0):
        self.value = 0.0
        self.step = step

    def __call__(self) -> float:
        current = self.value
        self.value += self.step
        return current


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def make_user(db):
    def _make(user_id: str = "user-1", tokens=("tok-1",), **kwargs) -> UserPreference:
        values = {"full_name": "Asha Rao", "timezone": "Asia/Kolkata"}
        values.update(kwargs)
        prefs = UserPreference(user_id=user_id, **values)
        db.add(prefs)
        for token in tokens:
            db.add(DeviceEndpoint(user_id=user_id, token=token, platform="android"))
        db.commit()
        return prefs
    return _make


@pytest.fixture
def make_policy(db):
    def _make(notification_type: str, **kwargs) -> NotificationPolicy:
        values = {
            "title_template": "Hi {name}",
            "body_template": "It is {currentTime}",
            "repeat_pattern": "daily",
        }
        values.update(kwargs)
        policy = NotificationPolicy(notification_type=notification_type, **values)
        db.add(policy)
        db.commit()
        return policy
    return _make
