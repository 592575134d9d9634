"""
Dedup guard: at most one notification per (user, type, user's local calendar day).

The fast path is a range read over the user's local day. The actual claim is
an insert against the (user_id, notification_type, local_date) unique key, so
two overlapping ticks cannot both win the same slot. A claim is written as a
"pending" row before delivery, confirmed to "sent" afterwards, and deleted
when delivery fails so the next tick can retry.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from fitnudge.utils.timezone import local_day_bounds, local_date, to_utc_aware
from . import repository
from .models import NotificationLog

logger = logging.getLogger(__name__)


class DedupGuard:
    def __init__(self, stale_after_minutes: int = 10):
        self.stale_after = timedelta(minutes=stale_after_minutes)

    def _is_stale(self, log: NotificationLog, now: datetime) -> bool:
        return log.status == "pending" and to_utc_aware(log.sent_at) < now - self.stale_after

    def already_sent(self, db: Session, user_id: str, notification_type: str, now: datetime, tz_name: Optional[str]) -> bool:
        now = to_utc_aware(now)
        start, end = local_day_bounds(now, tz_name)
        existing = repository.find_log_in_range(db, user_id, notification_type, start, end)
        if existing is None:
            return False
        if self._is_stale(existing, now):
            logger.info(f"[Dedup] Ignoring stale pending claim | user={user_id} type={notification_type}")
            return False
        return True

    def claim(self, db: Session, user_id: str, notification_type: str, now: datetime, tz_name: Optional[str]) -> Optional[NotificationLog]:
        """Insert-if-absent. Returns the claimed row, or None when the slot is taken."""
        now = to_utc_aware(now)
        day = local_date(now, tz_name)
        log = NotificationLog(
            user_id=user_id,
            notification_type=notification_type,
            local_date=day,
            status="pending",
            sent_at=now,
            details={},
        )
        if repository.insert_log_if_absent(db, log):
            return log
        stale = repository.take_over_stale_log(
            db, user_id, notification_type, day, stale_before=now - self.stale_after, now=now,
        )
        if stale is not None:
            logger.warning(f"[Dedup] Took over abandoned claim | user={user_id} type={notification_type} day={day}")
            return stale
        logger.debug(f"[Dedup] Slot already claimed | user={user_id} type={notification_type} day={day}")
        return None

    def confirm(self, db: Session, claim: NotificationLog, title: str, body: str, details: dict, now: datetime) -> NotificationLog:
        return repository.confirm_log(db, claim, title, body, details, to_utc_aware(now))

    def release(self, db: Session, claim: NotificationLog) -> None:
        repository.delete_log(db, claim)

    def record(
        self,
        db: Session,
        user_id: str,
        notification_type: str,
        title: str,
        body: str,
        details: dict,
        now: datetime,
        tz_name: Optional[str],
    ) -> Optional[NotificationLog]:
        """Claim and confirm in one step, for deliveries made without a prior claim."""
        claim = self.claim(db, user_id, notification_type, now, tz_name)
        if claim is None:
            return None
        return self.confirm(db, claim, title, body, details, now)
