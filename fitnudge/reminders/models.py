"""
Reminder engine models: policies, user preferences, the append-only
notification log, push endpoints and per-day meal completion state.
"""
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    Column, String, DateTime, Date, Boolean, Index, UniqueConstraint, JSON, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
import uuid

from fitnudge.db.base import Base
from fitnudge.utils.timezone import utc_now
from .constants import MEAL_SLOTS


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class NotificationPolicy(Base):
    """Operator-configured notification type with its schedule parameters"""
    __tablename__ = "notification_policies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    notification_type = Column(String, nullable=False, unique=True)
    title_template = Column(String, nullable=False)
    body_template = Column(String, nullable=False)
    schedule_time = Column(String(8), nullable=True)  # HH:MM local
    repeat_pattern = Column(String, nullable=False, default="daily")
    is_active = Column(Boolean, nullable=False, default=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    last_fired_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_notification_policies_active", "is_active", "is_enabled"),
    )


class UserPreference(Base):
    """Per-user local schedule and channel switches"""
    __tablename__ = "user_preferences"

    user_id = Column(String, primary_key=True)
    full_name = Column(String, nullable=True)
    timezone = Column(String, nullable=True)  # IANA id

    breakfast_time = Column(String(8), nullable=True)
    snack1_time = Column(String(8), nullable=True)
    lunch_time = Column(String(8), nullable=True)
    snack2_time = Column(String(8), nullable=True)
    dinner_time = Column(String(8), nullable=True)

    notifications_enabled = Column(Boolean, nullable=False, default=True)
    meal_reminders_enabled = Column(Boolean, nullable=False, default=True)
    water_reminders_enabled = Column(Boolean, nullable=False, default=True)
    weight_reminders_enabled = Column(Boolean, nullable=False, default=True)

    # Last time the foreground app reported activity
    last_active_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_user_preferences_enabled", "notifications_enabled"),
    )

    def meal_time(self, slot: str) -> Optional[str]:
        return getattr(self, f"{slot}_time", None)

    @property
    def first_name(self) -> Optional[str]:
        if not self.full_name or not self.full_name.strip():
            return None
        return self.full_name.split()[0]


class NotificationLog(Base):
    """One row per (user, type, local day). Written as a pending claim, confirmed on send."""
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    notification_type = Column(String, nullable=False)
    local_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, sent
    title = Column(String, nullable=True)
    body = Column(String, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    details = Column("metadata", JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("user_id", "notification_type", "local_date", name="uq_notification_logs_user_type_day"),
        Index("ix_notification_logs_user_type_sent", "user_id", "notification_type", "sent_at"),
    )


class DeviceEndpoint(Base):
    """Push token registered by a client device"""
    __tablename__ = "device_endpoints"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    token = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=True)  # ios, android, web
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    last_used_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_endpoints_user_token"),
    )


class MealDayRecord(Base):
    """Completion and notified-at state for each meal slot on one local day"""
    __tablename__ = "meal_day_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)

    breakfast_completed = Column(Boolean, nullable=False, default=False)
    snack1_completed = Column(Boolean, nullable=False, default=False)
    lunch_completed = Column(Boolean, nullable=False, default=False)
    snack2_completed = Column(Boolean, nullable=False, default=False)
    dinner_completed = Column(Boolean, nullable=False, default=False)

    breakfast_notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    snack1_notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    lunch_notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    snack2_notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    dinner_notification_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_meal_day_records_user_date"),
    )

    @staticmethod
    def _check_slot(slot: str) -> None:
        if slot not in MEAL_SLOTS:
            raise ValueError(f"Unknown meal slot: {slot}")

    def is_completed(self, slot: str) -> bool:
        self._check_slot(slot)
        return bool(getattr(self, f"{slot}_completed"))

    def notified_at(self, slot: str) -> Optional[datetime]:
        self._check_slot(slot)
        return getattr(self, f"{slot}_notification_sent_at")

    def set_completed(self, slot: str, completed: bool = True) -> None:
        self._check_slot(slot)
        setattr(self, f"{slot}_completed", completed)

    def set_notified(self, slot: str, when: datetime) -> None:
        self._check_slot(slot)
        setattr(self, f"{slot}_notification_sent_at", when)

    @classmethod
    def blank(cls, user_id: str, day: date) -> "MealDayRecord":
        """All slots incomplete and not notified."""
        record = cls(user_id=user_id, date=day)
        for slot in MEAL_SLOTS:
            setattr(record, f"{slot}_completed", False)
            setattr(record, f"{slot}_notification_sent_at", None)
        return record
