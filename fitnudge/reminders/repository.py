from datetime import datetime, date
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError

from .models import NotificationPolicy, UserPreference, NotificationLog, DeviceEndpoint, MealDayRecord


def list_active_policies(db: Session) -> List[NotificationPolicy]:
    stmt = (
        select(NotificationPolicy)
        .where(NotificationPolicy.is_active == True)  # noqa: E712
        .where(NotificationPolicy.is_enabled == True)  # noqa: E712
        .order_by(NotificationPolicy.notification_type.asc())
    )
    return list(db.execute(stmt).scalars())


def list_notifiable_users(db: Session) -> List[UserPreference]:
    stmt = (
        select(UserPreference)
        .where(UserPreference.notifications_enabled == True)  # noqa: E712
        .order_by(UserPreference.user_id.asc())
    )
    return list(db.execute(stmt).scalars())


def get_user_preference(db: Session, user_id: str) -> Optional[UserPreference]:
    return db.get(UserPreference, user_id)


def mark_policy_fired(db: Session, policy_id, when: datetime) -> None:
    db.execute(
        update(NotificationPolicy)
        .where(NotificationPolicy.id == policy_id)
        .values(last_fired_at=when)
    )
    db.commit()


def find_log_in_range(
    db: Session,
    user_id: str,
    notification_type: str,
    start: datetime,
    end: datetime,
) -> Optional[NotificationLog]:
    stmt = (
        select(NotificationLog)
        .where(NotificationLog.user_id == user_id)
        .where(NotificationLog.notification_type == notification_type)
        .where(NotificationLog.sent_at >= start)
        .where(NotificationLog.sent_at < end)
        .order_by(NotificationLog.sent_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def insert_log_if_absent(db: Session, log: NotificationLog) -> bool:
    """Atomic claim: relies on the (user_id, notification_type, local_date) unique key."""
    db.add(log)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def take_over_stale_log(
    db: Session,
    user_id: str,
    notification_type: str,
    day: date,
    stale_before: datetime,
    now: datetime,
) -> Optional[NotificationLog]:
    """Re-claim a pending row whose owner never confirmed it. Conditional UPDATE, no read-then-write."""
    result = db.execute(
        update(NotificationLog)
        .where(NotificationLog.user_id == user_id)
        .where(NotificationLog.notification_type == notification_type)
        .where(NotificationLog.local_date == day)
        .where(NotificationLog.status == "pending")
        .where(NotificationLog.sent_at < stale_before)
        .values(sent_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return None
    stmt = (
        select(NotificationLog)
        .where(NotificationLog.user_id == user_id)
        .where(NotificationLog.notification_type == notification_type)
        .where(NotificationLog.local_date == day)
    )
    return db.execute(stmt).scalars().first()


def confirm_log(db: Session, log: NotificationLog, title: str, body: str, details: dict, when: datetime) -> NotificationLog:
    log.status = "sent"
    log.title = title
    log.body = body
    log.details = details
    log.sent_at = when
    db.add(log)
    db.commit()
    return log


def delete_log(db: Session, log: NotificationLog) -> None:
    db.execute(delete(NotificationLog).where(NotificationLog.id == log.id))
    db.commit()


def list_endpoint_tokens(db: Session, user_id: str) -> List[str]:
    stmt = (
        select(DeviceEndpoint.token)
        .where(DeviceEndpoint.user_id == user_id)
        .order_by(DeviceEndpoint.last_used_at.desc())
    )
    return list(db.execute(stmt).scalars())


def delete_endpoints(db: Session, user_id: str, tokens: Sequence[str]) -> int:
    if not tokens:
        return 0
    result = db.execute(
        delete(DeviceEndpoint)
        .where(DeviceEndpoint.user_id == user_id)
        .where(DeviceEndpoint.token.in_(list(tokens)))
    )
    db.commit()
    return result.rowcount or 0


def touch_endpoints(db: Session, user_id: str, tokens: Sequence[str], when: datetime) -> None:
    if not tokens:
        return
    db.execute(
        update(DeviceEndpoint)
        .where(DeviceEndpoint.user_id == user_id)
        .where(DeviceEndpoint.token.in_(list(tokens)))
        .values(last_used_at=when)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def upsert_endpoint(db: Session, user_id: str, token: str, platform: Optional[str], when: datetime) -> DeviceEndpoint:
    existing = (
        db.query(DeviceEndpoint)
        .filter(DeviceEndpoint.user_id == user_id, DeviceEndpoint.token == token)
        .first()
    )
    if existing:
        existing.last_used_at = when
        if platform:
            existing.platform = platform
        db.add(existing)
        db.commit()
        db.refresh(existing)
        return existing
    endpoint = DeviceEndpoint(user_id=user_id, token=token, platform=platform, created_at=when, last_used_at=when)
    db.add(endpoint)
    db.commit()
    db.refresh(endpoint)
    return endpoint


def remove_endpoint(db: Session, user_id: str, token: str) -> bool:
    return delete_endpoints(db, user_id, [token]) > 0


def get_meal_day(db: Session, user_id: str, day: date) -> Optional[MealDayRecord]:
    return (
        db.query(MealDayRecord)
        .filter(MealDayRecord.user_id == user_id, MealDayRecord.date == day)
        .first()
    )


def get_or_create_meal_day(db: Session, user_id: str, day: date) -> MealDayRecord:
    """Create-if-absent; a concurrent creator wins the unique key and we read its row."""
    existing = get_meal_day(db, user_id, day)
    if existing:
        return existing
    record = MealDayRecord.blank(user_id, day)
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_meal_day(db, user_id, day)
        if existing is None:
            raise
        return existing
    db.refresh(record)
    return record


def save_meal_day(db: Session, record: MealDayRecord) -> MealDayRecord:
    db.add(record)
    db.commit()
    db.refresh(record)
    return record
