import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fitnudge.db.session import get_db
from fitnudge.reminders.api import router
from fitnudge.reminders.orchestrator import ReminderOrchestrator
from tests.conftest import FakeSender

AUTH = {"Authorization": "Bearer test-secret"}


@pytest.fixture
def client(session_factory, sender):
    app = FastAPI()
    app.state.orchestrator = ReminderOrchestrator(session_factory, sender)
    app.include_router(router, prefix="/api")

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c


def test_cron_requires_secret(client):
    assert client.post("/api/cron/notifications").status_code == 401
    wrong = client.post("/api/cron/notifications", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401
    raw = client.post("/api/cron/notifications", headers={"Authorization": "test-secret"})
    assert raw.status_code == 401


def test_cron_unset_secret_rejects(client, monkeypatch):
    from fitnudge.core.config import settings
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    assert client.post("/api/cron/notifications", headers=AUTH).status_code == 401


def test_cron_response_shape(client):
    r = client.post("/api/cron/notifications", headers=AUTH)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["totalSent"] == 0
    assert body["totalUsers"] == 0
    assert body["results"] == []
    assert body["truncated"] is False
    assert "timestamp" in body


def test_cron_replay_at_instant(client, sender, make_user, make_policy):
    make_policy("good_morning")
    make_user()
    r = client.post("/api/cron/notifications", params={"now": "2026-03-02T01:45:00Z"}, headers=AUTH)
    assert r.status_code == 200
    body = r.json()
    assert body["totalSent"] == 1
    assert body["totalUsers"] == 1
    assert body["results"] == [{"type": "good_morning", "sent": 1, "errors": [], "noEndpoints": 0}]
    assert len(sender.calls) == 1


def test_cron_replay_blocked_in_production(client, monkeypatch):
    from fitnudge.core.config import Environment, settings
    monkeypatch.setattr(settings, "ENVIRONMENT", Environment.PRODUCTION)
    r = client.post("/api/cron/notifications", params={"now": "2026-03-02T01:45:00Z"}, headers=AUTH)
    assert r.status_code == 400


def test_cron_fetch_failure_is_500(client):
    def broken_factory():
        raise RuntimeError("database unavailable")

    client.app.state.orchestrator = ReminderOrchestrator(broken_factory, FakeSender())
    r = client.post("/api/cron/notifications", headers=AUTH)
    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "Internal server error"
    assert "database unavailable" in body["details"]


def test_register_and_remove_device(client):
    r = client.post("/api/devices", json={"user_id": "u1", "token": "tok-9", "platform": "web"})
    assert r.status_code == 200
    assert r.json()["token"] == "tok-9"

    again = client.post("/api/devices", json={"user_id": "u1", "token": "tok-9", "platform": "android"})
    assert again.json()["id"] == r.json()["id"]
    assert again.json()["platform"] == "android"

    gone = client.request("DELETE", "/api/devices", json={"user_id": "u1", "token": "tok-9"})
    assert gone.status_code == 204
    missing = client.request("DELETE", "/api/devices", json={"user_id": "u1", "token": "tok-9"})
    assert missing.status_code == 404


def test_register_device_rejects_unknown_platform(client):
    r = client.post("/api/devices", json={"user_id": "u1", "token": "tok", "platform": "fax"})
    assert r.status_code == 422


def test_complete_meal(client, make_user):
    make_user()
    r = client.post("/api/meals/lunch/complete", json={"user_id": "user-1", "day": "2026-03-02"})
    assert r.status_code == 200
    body = r.json()
    assert body["slot"] == "lunch"
    assert body["completed"] is True
    assert body["date"] == "2026-03-02"

    undo = client.post("/api/meals/lunch/complete", json={"user_id": "user-1", "day": "2026-03-02", "completed": False})
    assert undo.json()["completed"] is False


def test_complete_meal_unknown_slot_or_user(client, make_user):
    make_user()
    assert client.post("/api/meals/brunch/complete", json={"user_id": "user-1"}).status_code == 404
    assert client.post("/api/meals/lunch/complete", json={"user_id": "nobody"}).status_code == 404


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy", "service": "reminders"}


def test_create_app_wires_shared_orchestrator(session_factory, sender):
    from fitnudge.main import create_app

    orchestrator = ReminderOrchestrator(session_factory, sender)
    app = create_app(orchestrator=orchestrator)
    assert app.state.orchestrator is orchestrator

    client = TestClient(app)
    assert client.get("/api/health").status_code == 200
    assert client.post("/api/cron/notifications").status_code == 401
    assert client.get("/metrics").status_code == 404


def test_notification_type_catalog(client):
    catalog = client.get("/api/notification-types").json()
    by_value = {entry["value"]: entry for entry in catalog}
    assert by_value["water_reminder"]["label"] == "💧 Water Reminder"
    assert by_value["water_reminder"]["action"] == "open_water"
    assert by_value["meal_reminder_lunch"]["action"] == "open_meals"
    assert by_value["feedback_request"]["action"] == "open_feedback"
