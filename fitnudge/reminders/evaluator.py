"""
Schedule evaluation: given a policy, a user's preferences and an instant,
decide whether the notification is due in the user's local time.

Pure: no I/O and no reads of the system clock, so the same inputs always
produce the same Decision. Each notification type maps to one rule object;
types without a dedicated rule fall back to the repeat pattern.
"""
from dataclasses import dataclass
from datetime import datetime, time
from typing import Dict, Optional

from fitnudge.utils.timezone import to_local, parse_clock_time, minutes_of_day
from .constants import (
    GOOD_MORNING, GOOD_NIGHT, WATER_REMINDER, WEEKLY_WEIGHT_REMINDER,
    WEEKLY_MEASUREMENT_REMINDER, MEAL_REMINDER_PREFIX, MEAL_SLOTS, REPEAT_PATTERNS,
)


SUNDAY = 6  # datetime.weekday()


@dataclass(frozen=True)
class Decision:
    fire: bool
    reason: str
    slot: Optional[str] = None


@dataclass(frozen=True)
class EvaluationContext:
    policy: object
    prefs: object
    local_now: datetime
    window_minutes: Optional[int]
    default_target_hour: int
    meal_delay_minutes: int

    def target_time(self) -> time:
        parsed = parse_clock_time(getattr(self.policy, "schedule_time", None))
        return parsed if parsed is not None else time(self.default_target_hour, 0)


def clock_matches(local_now: datetime, target: time, window_minutes: Optional[int] = None) -> bool:
    """
    Exact-hour match when no window is given (the hourly tick semantics);
    otherwise true within +/- window/2 minutes of the target, wrapping midnight.
    """
    if window_minutes is None:
        return local_now.hour == target.hour
    diff = abs(minutes_of_day(local_now) - minutes_of_day(target))
    diff = min(diff, 24 * 60 - diff)
    return diff * 2 <= window_minutes


def meal_trigger_time(slot_time: time, delay_minutes: int = 60) -> time:
    """Slot time shifted by the reminder delay, wrapped onto the 24h clock."""
    total = (minutes_of_day(slot_time) + delay_minutes) % (24 * 60)
    return time(total // 60, total % 60)


def good_night_hour(dinner_time: Optional[str]) -> int:
    """An hour after dinner, never before 20:00 and never after 23:00."""
    dinner = parse_clock_time(dinner_time)
    if dinner is None:
        return 20
    return min(23, max(20, dinner.hour + 1))


class Rule:
    def __call__(self, ctx: EvaluationContext) -> Decision:
        raise NotImplementedError


class GoodMorningRule(Rule):
    def __call__(self, ctx):
        now = ctx.local_now
        return Decision(
            clock_matches(now, time(7, 0), ctx.window_minutes),
            f"Good morning check: current {now:%H:%M}, need 07:xx",
        )


class GoodNightRule(Rule):
    def __call__(self, ctx):
        now = ctx.local_now
        dinner = getattr(ctx.prefs, "dinner_time", None)
        hour = good_night_hour(dinner)
        return Decision(
            clock_matches(now, time(hour, 0), ctx.window_minutes),
            f"Good night check: current {now:%H:%M}, need {hour:02d}:xx (dinner: {dinner or 'not set'})",
        )


class WaterRule(Rule):
    def __call__(self, ctx):
        if getattr(ctx.policy, "repeat_pattern", None) != "hourly":
            return Decision(False, "Schedule not matched")
        if not getattr(ctx.prefs, "water_reminders_enabled", True):
            return Decision(False, "Water reminders disabled")
        hour = ctx.local_now.hour
        return Decision(
            8 <= hour <= 22 and hour % 2 == 0,
            f"Water reminder: current {ctx.local_now:%H:%M}, need even hour 8-22",
        )


class WeeklyRule(Rule):
    def __call__(self, ctx):
        if getattr(ctx.policy, "repeat_pattern", None) != "weekly":
            return Decision(False, "Schedule not matched")
        if not getattr(ctx.prefs, "weight_reminders_enabled", True):
            return Decision(False, "Weight reminders disabled")
        now = ctx.local_now
        target = ctx.target_time()
        is_sunday = now.weekday() == SUNDAY
        return Decision(
            is_sunday and clock_matches(now, target, ctx.window_minutes),
            f"Weekly reminder: current {'Sunday' if is_sunday else 'not Sunday'} {now:%H:%M}, "
            f"need Sunday {target.hour:02d}:xx",
        )


class MealRule(Rule):
    """Clock half of the meal check; completion state is the reconciler's job."""

    def __init__(self, slot: str):
        self.slot = slot

    def __call__(self, ctx):
        slot_time = parse_clock_time(getattr(ctx.prefs, f"{self.slot}_time", None))
        if slot_time is None or not getattr(ctx.prefs, "meal_reminders_enabled", True):
            return Decision(False, "Meal time not configured or reminders disabled", slot=self.slot)
        trigger = meal_trigger_time(slot_time, ctx.meal_delay_minutes)
        now = ctx.local_now
        return Decision(
            clock_matches(now, trigger, ctx.window_minutes),
            f"Meal reminder for {self.slot}: meal at {slot_time:%H:%M}, reminder at {trigger:%H:%M}, "
            f"current {now:%H:%M}",
            slot=self.slot,
        )


class DailyRule(Rule):
    def __call__(self, ctx):
        if getattr(ctx.policy, "repeat_pattern", None) != "daily":
            return Decision(False, "Schedule not matched")
        now = ctx.local_now
        target = ctx.target_time()
        return Decision(
            clock_matches(now, target, ctx.window_minutes),
            f"Daily notification: current {now:%H:%M}, need {target.hour:02d}:xx",
        )


RULES: Dict[str, Rule] = {
    GOOD_MORNING: GoodMorningRule(),
    GOOD_NIGHT: GoodNightRule(),
    WATER_REMINDER: WaterRule(),
    WEEKLY_WEIGHT_REMINDER: WeeklyRule(),
    WEEKLY_MEASUREMENT_REMINDER: WeeklyRule(),
}
RULES.update({f"{MEAL_REMINDER_PREFIX}{slot}": MealRule(slot) for slot in MEAL_SLOTS})

DEFAULT_RULE = DailyRule()


def rule_for(notification_type: str) -> Rule:
    return RULES.get(notification_type, DEFAULT_RULE)


class ScheduleEvaluator:
    def __init__(
        self,
        window_minutes: Optional[int] = None,
        default_target_hour: int = 9,
        meal_delay_minutes: int = 60,
    ):
        self.window_minutes = window_minutes
        self.default_target_hour = default_target_hour
        self.meal_delay_minutes = meal_delay_minutes

    def evaluate(self, policy, prefs, now: datetime) -> Decision:
        pattern = getattr(policy, "repeat_pattern", None)
        if pattern is not None and pattern not in REPEAT_PATTERNS:
            return Decision(False, f"Unknown repeat pattern: {pattern}")
        local_now = to_local(now, getattr(prefs, "timezone", None))
        ctx = EvaluationContext(
            policy=policy,
            prefs=prefs,
            local_now=local_now,
            window_minutes=self.window_minutes,
            default_target_hour=self.default_target_hour,
            meal_delay_minutes=self.meal_delay_minutes,
        )
        return rule_for(policy.notification_type)(ctx)


def evaluate(policy, prefs, now: datetime, window_minutes: Optional[int] = None) -> Decision:
    """Module-level shortcut using default parameters."""
    return ScheduleEvaluator(window_minutes=window_minutes).evaluate(policy, prefs, now)
