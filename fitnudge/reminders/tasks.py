from datetime import datetime
from typing import Optional
from celery import shared_task
from celery.utils.log import get_logger

from fitnudge.db.session import SessionLocal
from .orchestrator import ReminderOrchestrator
from .push import FCMPushSender
from .celery_app import celery_app  # noqa: F401

logger = get_logger(__name__)


def build_orchestrator() -> ReminderOrchestrator:
    return ReminderOrchestrator.from_settings(SessionLocal, FCMPushSender())


@shared_task(name="reminders.run_tick")
def run_tick_task(now: Optional[str] = None) -> dict:
    """Run one orchestrator tick. Returns the summary counts."""
    at = datetime.fromisoformat(now.replace("Z", "+00:00")) if now else None
    summary = build_orchestrator().run_tick(now=at)
    logger.info(
        f"[Cron] Tick done | sent={summary.total_sent} users={summary.total_users} "
        f"errors={len(summary.errors)} truncated={summary.truncated}"
    )
    return {
        "timestamp": summary.timestamp.isoformat(),
        "totalSent": summary.total_sent,
        "totalUsers": summary.total_users,
        "errors": summary.errors,
        "truncated": summary.truncated,
        "skipped": summary.skipped,
    }
