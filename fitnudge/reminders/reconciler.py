"""
Meal completion reconciler.

Meal reminders depend on live completion state, not just the clock: a slot
is only reminded when it is past its trigger time, still incomplete and not
already reminded today. `meal_reminder_due` is the shared predicate; the
client wake scheduler evaluates the same function against its cached state.
"""
import logging
from datetime import datetime, date, time, timedelta
from typing import Optional, Tuple
from sqlalchemy.orm import Session

from fitnudge.utils.timezone import to_local, to_utc_aware, parse_clock_time
from .evaluator import Decision, clock_matches, meal_trigger_time
from .constants import MEAL_SLOTS
from .models import MealDayRecord, UserPreference
from . import repository

logger = logging.getLogger(__name__)


def meal_reminder_due(
    slot: str,
    slot_time: Optional[time],
    local_now: datetime,
    completed: bool,
    notified_at: Optional[datetime],
    user_active_recently: bool = False,
    cooldown_minutes: int = 60,
    window_minutes: Optional[int] = None,
    delay_minutes: int = 60,
) -> Decision:
    if slot_time is None:
        return Decision(False, f"{slot} time not configured", slot=slot)
    trigger = meal_trigger_time(slot_time, delay_minutes)
    if not clock_matches(local_now, trigger, window_minutes):
        return Decision(False, f"{slot}: reminder at {trigger:%H:%M}, current {local_now:%H:%M}", slot=slot)
    if completed:
        state = "completed, user active" if user_active_recently else "already completed"
        return Decision(False, f"{slot} {state}", slot=slot)
    if notified_at is not None:
        elapsed = to_utc_aware(local_now) - to_utc_aware(notified_at)
        if elapsed < timedelta(minutes=cooldown_minutes):
            return Decision(False, f"{slot} notified {int(elapsed.total_seconds() // 60)} min ago (cooldown)", slot=slot)
        return Decision(False, f"{slot} already notified today", slot=slot)
    return Decision(True, f"{slot} overdue since {trigger:%H:%M} and not completed", slot=slot)


class MealReconciler:
    def __init__(
        self,
        cooldown_minutes: int = 60,
        active_recently_minutes: int = 15,
        window_minutes: Optional[int] = None,
        delay_minutes: int = 60,
    ):
        self.cooldown_minutes = cooldown_minutes
        self.active_recently = timedelta(minutes=active_recently_minutes)
        self.window_minutes = window_minutes
        self.delay_minutes = delay_minutes

    def user_active_recently(self, prefs: UserPreference, now: datetime) -> bool:
        last_active = getattr(prefs, "last_active_at", None)
        if last_active is None:
            return False
        return to_utc_aware(now) - to_utc_aware(last_active) < self.active_recently

    def check(self, db: Session, prefs: UserPreference, slot: str, now: datetime) -> Tuple[Decision, MealDayRecord]:
        """Load (or lazily create) today's record and decide for one slot."""
        if slot not in MEAL_SLOTS:
            raise ValueError(f"Unknown meal slot: {slot}")
        local_now = to_local(now, prefs.timezone)
        record = repository.get_or_create_meal_day(db, prefs.user_id, local_now.date())
        decision = meal_reminder_due(
            slot,
            parse_clock_time(prefs.meal_time(slot)),
            local_now,
            completed=record.is_completed(slot),
            notified_at=record.notified_at(slot),
            user_active_recently=self.user_active_recently(prefs, now),
            cooldown_minutes=self.cooldown_minutes,
            window_minutes=self.window_minutes,
            delay_minutes=self.delay_minutes,
        )
        logger.debug(f"[Meals] user={prefs.user_id} {decision.reason}")
        return decision, record

    def mark_notified(self, db: Session, record: MealDayRecord, slot: str, now: datetime) -> MealDayRecord:
        record.set_notified(slot, to_utc_aware(now))
        return repository.save_meal_day(db, record)

    def mark_completed(self, db: Session, user_id: str, slot: str, day: date, completed: bool = True) -> MealDayRecord:
        record = repository.get_or_create_meal_day(db, user_id, day)
        record.set_completed(slot, completed)
        logger.info(f"[Meals] user={user_id} {slot} on {day} completed={completed}")
        return repository.save_meal_day(db, record)
