import logging
import secrets
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from fitnudge.core.config import settings
from fitnudge.db.session import get_db
from fitnudge.utils.timezone import utc_now, local_date
from .constants import MEAL_SLOTS, NOTIFICATION_TYPES, notification_action
from .errors import ConfigFetchError, UserFetchError
from .orchestrator import ReminderOrchestrator, TickSummary
from .reconciler import MealReconciler
from .schemas import (
    TickResponse, PolicyResultRead, DeviceEndpointCreate, DeviceEndpointDelete, DeviceEndpointRead,
    MealCompletionCreate, MealDayRead, NotificationTypeRead,
)
from . import repository

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> bool:
    """Authorization: Bearer <CRON_SECRET>; an unset secret rejects everything."""
    secret = settings.CRON_SECRET
    if not secret or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(authorization, f"Bearer {secret}"):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


def get_orchestrator(request: Request) -> ReminderOrchestrator:
    return request.app.state.orchestrator


def _to_response(summary: TickSummary) -> TickResponse:
    return TickResponse(
        success=summary.success,
        timestamp=summary.timestamp,
        total_sent=summary.total_sent,
        total_users=summary.total_users,
        results=[
            PolicyResultRead(type=r.type, sent=r.sent, errors=r.errors, no_endpoints=r.no_endpoints)
            for r in summary.results
        ],
        truncated=summary.truncated,
        skipped=summary.skipped,
    )


@router.post("/cron/notifications", response_model=TickResponse, dependencies=[Depends(verify_cron_secret)])
def run_notifications_tick(
    now: Optional[datetime] = Query(default=None, description="Replay the tick at this instant (non-production only)"),
    orchestrator: ReminderOrchestrator = Depends(get_orchestrator),
):
    if now is not None and settings.is_production:
        raise HTTPException(status_code=400, detail="now override is not allowed in production")
    try:
        summary = orchestrator.run_tick(now=now)
    except (ConfigFetchError, UserFetchError) as e:
        logger.error(f"[Cron] Tick aborted: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})
    return _to_response(summary)


@router.post("/devices", response_model=DeviceEndpointRead)
def register_device_endpoint(payload: DeviceEndpointCreate, db: Session = Depends(get_db)):
    e = repository.upsert_endpoint(db, payload.user_id, payload.token, payload.platform, utc_now())
    return DeviceEndpointRead(
        id=str(e.id),
        user_id=e.user_id,
        token=e.token,
        platform=e.platform,
        created_at=e.created_at,
        last_used_at=e.last_used_at,
    )


@router.delete("/devices", status_code=204)
def remove_device_endpoint(payload: DeviceEndpointDelete, db: Session = Depends(get_db)):
    if not repository.remove_endpoint(db, payload.user_id, payload.token):
        raise HTTPException(status_code=404, detail="Endpoint not found")
    return Response(status_code=204)


@router.post("/meals/{slot}/complete", response_model=MealDayRead)
def complete_meal(slot: str, payload: MealCompletionCreate, db: Session = Depends(get_db)):
    if slot not in MEAL_SLOTS:
        raise HTTPException(status_code=404, detail=f"Unknown meal slot: {slot}")
    prefs = repository.get_user_preference(db, payload.user_id)
    if prefs is None:
        raise HTTPException(status_code=404, detail="User not found")
    day = payload.day or local_date(utc_now(), prefs.timezone)
    record = MealReconciler().mark_completed(db, payload.user_id, slot, day, payload.completed)
    return MealDayRead(
        user_id=record.user_id,
        date=record.date,
        slot=slot,
        completed=record.is_completed(slot),
        notified_at=record.notified_at(slot),
    )


@router.get("/notification-types", response_model=List[NotificationTypeRead])
def list_notification_types():
    return [
        NotificationTypeRead(value=value, label=label, description=description, action=notification_action(value))
        for value, label, description in NOTIFICATION_TYPES
    ]


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "reminders"}
