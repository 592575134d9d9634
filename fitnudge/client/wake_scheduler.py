"""
Intelligent wake scheduler for meal reminders on the device.

The scheduler sleeps on a single timer until the next plausible reminder
checkpoint (slot time + delay), re-evaluates the slot against its cached
state with the same predicate the server uses, shows a local notification
when the slot is overdue, then re-arms the timer. Storage reads go to the
foreground app first and fall back to the local cache when it does not
answer in time.

States: IDLE -> WAITING -> CHECKING -> (NOTIFY | SKIP) -> WAITING
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, date, time, timedelta, timezone as dt_timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo

from fitnudge.reminders.constants import (
    MEAL_SLOTS, MEAL_LABELS, ACTION_MARK_COMPLETED, ACTION_VIEW_MEALS,
)
from fitnudge.reminders.reconciler import meal_reminder_due
from fitnudge.utils.timezone import parse_clock_time
from .bus import MessageBus
from .cache import LocalCache
from .messages import BusMessage, MessageType
from .notifier import LocalNotification, NotificationAction, Notifier

logger = logging.getLogger(__name__)

QUIET_START = time(22, 0)
QUIET_END = time(6, 0)

INITIAL_DELAY = timedelta(seconds=5)
FALLBACK_INTERVAL = timedelta(hours=1)
NOT_CONFIGURED_INTERVAL = timedelta(hours=6)
MISSING_TIMES_INTERVAL = timedelta(hours=1)

# cache keys, mirrored from the foreground app's storage
MEAL_TIMES = "meal_times"
MEAL_TIMES_CONFIGURED = "meal_times_configured"
USER_DATA = "user_data"
MEALS = "meals"
MEAL_NOTIFICATIONS_SENT = "meal_notifications_sent"

MEALS_URL = "/meals"


class State(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    CHECKING = "checking"
    NOTIFY = "notify"
    SKIP = "skip"


@dataclass
class CheckResult:
    checked_at: datetime
    next_check_at: datetime
    notified: List[str] = field(default_factory=list)
    reason: str = ""


def in_quiet_hours(local_now: datetime) -> bool:
    clock = local_now.time()
    return clock >= QUIET_START or clock < QUIET_END


def _wall_clock(day: date, clock: time, zone) -> datetime:
    # Round-trip through UTC so nonexistent/ambiguous DST wall times resolve to a real instant
    return datetime.combine(day, clock, tzinfo=zone).astimezone(dt_timezone.utc).astimezone(zone)


def checkpoint_for(day: date, slot_time: time, zone, delay_minutes: int = 60) -> datetime:
    start = _wall_clock(day, slot_time, zone)
    return (start.astimezone(dt_timezone.utc) + timedelta(minutes=delay_minutes)).astimezone(zone)


def compute_next_check(
    local_now: datetime,
    meal_times: Mapping[str, Optional[time]],
    pending: Iterable[str],
    delay_minutes: int = 60,
) -> datetime:
    """
    When the scheduler should wake next.

    Inside quiet hours this is the next 06:00. Otherwise it is the earliest
    checkpoint still in the future among the pending slots, or the first
    checkpoint of tomorrow when nothing is left today.
    """
    zone = local_now.tzinfo
    today = local_now.date()

    if in_quiet_hours(local_now):
        day = today if local_now.time() < QUIET_END else today + timedelta(days=1)
        return _wall_clock(day, QUIET_END, zone)

    pending = set(pending)
    upcoming = [
        checkpoint_for(today, slot_time, zone, delay_minutes)
        for slot, slot_time in meal_times.items()
        if slot in pending and slot_time is not None
    ]
    now_utc = local_now.astimezone(dt_timezone.utc)
    upcoming = [c for c in upcoming if c.astimezone(dt_timezone.utc) > now_utc]
    if upcoming:
        return min(upcoming, key=lambda c: c.astimezone(dt_timezone.utc))

    tomorrow = [
        checkpoint_for(today + timedelta(days=1), slot_time, zone, delay_minutes)
        for slot_time in meal_times.values()
        if slot_time is not None
    ]
    if tomorrow:
        return min(tomorrow, key=lambda c: c.astimezone(dt_timezone.utc))
    return local_now + FALLBACK_INTERVAL


def _decode(value: Any) -> Any:
    """Foreground storage hands back JSON strings; cached values may already be decoded."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def with_meal_completed(meals: Any, slot: str, day: str) -> List[Dict[str, Any]]:
    """Return the meals list with `<slot>_completed` set on the record for `day`."""
    meals = _decode(meals) or []
    if isinstance(meals, dict):
        meals = [meals]
    record = next((m for m in meals if isinstance(m, dict) and m.get("date") == day), None)
    if record is None:
        record = {"date": day}
        meals.append(record)
    record[f"{slot}_completed"] = True
    return meals


def parse_meal_times(raw: Any) -> Dict[str, Optional[time]]:
    """{'breakfast_time': '08:00', ...} (or bare slot keys) -> {'breakfast': time(8, 0), ...}"""
    data = _decode(raw)
    if not isinstance(data, dict):
        return {}
    times: Dict[str, Optional[time]] = {}
    for slot in MEAL_SLOTS:
        value = data.get(f"{slot}_time", data.get(slot))
        parsed = parse_clock_time(value) if value else None
        if parsed is not None:
            times[slot] = parsed
    return times


def _truthy(value: Any) -> bool:
    value = _decode(value)
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no")
    return bool(value)


def build_meal_notification(slot: str, day: date, first_name: Optional[str]) -> LocalNotification:
    label, emoji = MEAL_LABELS[slot]
    greeting = f"Hi {first_name}" if first_name else "Hi there"
    return LocalNotification(
        title=f"{emoji} {label} Reminder",
        body=f"{greeting}! You missed your {label.lower()}. Please mark it as completed if you already took it.",
        tag=f"meal-{slot}-{day.isoformat()}",
        data={"url": MEALS_URL, "mealType": slot, "mealLabel": label, "date": day.isoformat()},
        actions=[
            NotificationAction(ACTION_MARK_COMPLETED, "Mark as Completed"),
            NotificationAction(ACTION_VIEW_MEALS, "View Meals"),
        ],
    )


class WakeScheduler:
    def __init__(
        self,
        bus: MessageBus,
        notifier: Notifier,
        cache: Optional[LocalCache] = None,
        tz: Optional[ZoneInfo] = None,
        clock=None,
        request_timeout: float = 1.0,
        cooldown_minutes: int = 60,
        delay_minutes: int = 60,
        window_minutes: Optional[int] = None,
    ):
        self.bus = bus
        self.notifier = notifier
        self.cache = cache or LocalCache()
        self.tz = tz
        self._clock = clock
        self.request_timeout = request_timeout
        self.cooldown_minutes = cooldown_minutes
        self.delay_minutes = delay_minutes
        self.window_minutes = window_minutes

        self.state = State.IDLE
        self.next_check_at: Optional[datetime] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    def now(self) -> datetime:
        """Device-local wall clock, always timezone-aware."""
        if self._clock is not None:
            current = self._clock()
        elif self.tz is not None:
            current = datetime.now(self.tz)
        else:
            current = datetime.now().astimezone()
        if self.tz is not None:
            return current.astimezone(self.tz)
        return current if current.tzinfo else current.astimezone()

    def _set_state(self, state: State) -> None:
        if state != self.state:
            logger.debug(f"[Wake] {self.state.value} -> {state.value}")
        self.state = state

    # ---- lifecycle ----

    def start(self, initial_delay: timedelta = INITIAL_DELAY) -> asyncio.Task:
        """Arm the first check a few seconds out and keep re-arming until stop()."""
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self.run(initial_delay))
        return self._task

    async def stop(self) -> None:
        self._stopped = True
        if self._wakeup is not None:
            self._wakeup.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._set_state(State.IDLE)

    async def run(self, initial_delay: timedelta = INITIAL_DELAY) -> None:
        self._wakeup = asyncio.Event()
        self.next_check_at = self.now() + initial_delay
        self._set_state(State.WAITING)
        logger.info(f"[Wake] Scheduler started, first check at {self.next_check_at.isoformat()}")
        while not self._stopped:
            woke_early = await self._sleep(self._seconds_until_next())
            if self._stopped:
                break
            if woke_early:
                # re-armed with a new next_check_at
                continue
            await self.check_now()

    def _seconds_until_next(self) -> float:
        if self.next_check_at is None:
            return FALLBACK_INTERVAL.total_seconds()
        # UTC on both sides; same-zone subtraction would ignore a DST shift
        remaining = self.next_check_at.astimezone(dt_timezone.utc) - self.now().astimezone(dt_timezone.utc)
        return max(0.0, remaining.total_seconds())

    async def _sleep(self, seconds: float) -> bool:
        """Wait on the timer; True when something re-armed it before it fired."""
        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    def reschedule(self, next_check_at: datetime) -> None:
        """Drop the pending timer and arm a fresh one."""
        self.next_check_at = next_check_at
        self._set_state(State.WAITING)
        if self._wakeup is not None:
            self._wakeup.set()
        logger.info(f"[Wake] Next check at {next_check_at.isoformat()}")

    # ---- storage ----

    async def _read(self, key: str) -> Any:
        value = await self.bus.request(BusMessage.get_local_storage(key), timeout=self.request_timeout)
        if value is not None:
            self.cache.put(key, value)
            return value
        return self.cache.get(key)

    def _today_meals(self, meals: Any, today: str) -> Dict[str, Any]:
        meals = _decode(meals)
        if isinstance(meals, dict):
            meals = [meals]
        for record in meals or []:
            if isinstance(record, dict) and record.get("date") == today:
                return record
        return {}

    def _sent_today(self, ledger: Any, today: str) -> List[Dict[str, Any]]:
        entries = _decode(ledger) or []
        return [e for e in entries if isinstance(e, dict) and e.get("date") == today]

    def _notified_at(self, sent: List[Dict[str, Any]], slot: str) -> Optional[datetime]:
        stamps = [e.get("timestamp") for e in sent if e.get("mealType") == slot]
        stamps = [s for s in stamps if isinstance(s, (int, float))]
        if not stamps:
            # ledger entry without a timestamp still counts as notified today
            if any(e.get("mealType") == slot for e in sent):
                return datetime.min.replace(tzinfo=dt_timezone.utc)
            return None
        return datetime.fromtimestamp(max(stamps) / 1000, tz=dt_timezone.utc)

    async def _mark_sent(self, slot: str, local_now: datetime) -> None:
        today = local_now.date().isoformat()
        timestamp = local_now.timestamp() * 1000
        ledger = self._sent_today(self.cache.get(MEAL_NOTIFICATIONS_SENT), today)
        ledger.append({"mealType": slot, "date": today, "timestamp": timestamp})
        self.cache.put(MEAL_NOTIFICATIONS_SENT, ledger)
        await self.bus.post(BusMessage.mark_notification_sent(slot, today, timestamp), timeout=self.request_timeout)

    # ---- checking ----

    async def check_now(self) -> CheckResult:
        """Run one CHECKING pass and re-arm the timer. Never raises."""
        self._set_state(State.CHECKING)
        local_now = self.now()
        result = CheckResult(checked_at=local_now, next_check_at=local_now + FALLBACK_INTERVAL)
        try:
            await self._check(local_now, result)
        except Exception as e:
            logger.error(f"[Wake] Meal check failed, retrying in an hour: {e!r}")
            self._set_state(State.SKIP)
            result.next_check_at = local_now + FALLBACK_INTERVAL
            result.reason = "error"
        self.reschedule(result.next_check_at)
        return result

    async def _check(self, local_now: datetime, result: CheckResult) -> None:
        if not _truthy(await self._read(MEAL_TIMES_CONFIGURED)):
            logger.info("[Wake] Meal times not configured, checking again in 6 hours")
            self._set_state(State.SKIP)
            result.next_check_at = local_now + NOT_CONFIGURED_INTERVAL
            result.reason = "not_configured"
            return

        meal_times = parse_meal_times(await self._read(MEAL_TIMES))
        if not meal_times:
            logger.info("[Wake] No meal times found, checking again in 1 hour")
            self._set_state(State.SKIP)
            result.next_check_at = local_now + MISSING_TIMES_INTERVAL
            result.reason = "no_meal_times"
            return

        if in_quiet_hours(local_now):
            logger.info("[Wake] Quiet hours (22:00-06:00), skipping check")
            self._set_state(State.SKIP)
            result.next_check_at = compute_next_check(local_now, meal_times, (), self.delay_minutes)
            result.reason = "quiet_hours"
            return

        user_data = _decode(await self._read(USER_DATA)) or {}
        full_name = user_data.get("full_name") if isinstance(user_data, dict) else None
        first_name = full_name.split()[0] if full_name and full_name.strip() else None

        today = local_now.date()
        meal = self._today_meals(await self._read(MEALS), today.isoformat())
        sent = self._sent_today(await self._read(MEAL_NOTIFICATIONS_SENT), today.isoformat())

        pending = []
        for slot in MEAL_SLOTS:
            if slot not in meal_times:
                continue
            completed = bool(meal.get(f"{slot}_completed"))
            notified_at = self._notified_at(sent, slot)
            decision = meal_reminder_due(
                slot,
                meal_times[slot],
                local_now,
                completed=completed,
                notified_at=notified_at,
                cooldown_minutes=self.cooldown_minutes,
                window_minutes=self.window_minutes,
                delay_minutes=self.delay_minutes,
            )
            if decision.fire:
                self._set_state(State.NOTIFY)
                logger.info(f"[Wake] Showing reminder for {slot}")
                await self.notifier.show(build_meal_notification(slot, today, first_name))
                await self._mark_sent(slot, local_now)
                result.notified.append(slot)
            elif not completed and notified_at is None:
                pending.append(slot)

        if not result.notified:
            self._set_state(State.SKIP)
        result.next_check_at = compute_next_check(local_now, meal_times, pending, self.delay_minutes)
        result.reason = "notified" if result.notified else "nothing_due"

    # ---- inbound ----

    async def handle_action(self, action: Optional[str], data: Mapping[str, Any]) -> None:
        """A tap on a local notification or one of its action buttons."""
        if action == ACTION_MARK_COMPLETED:
            slot = data.get("mealType")
            if slot not in MEAL_SLOTS:
                logger.warning(f"[Wake] mark-completed for unknown meal {slot!r}")
                return
            day = data.get("date") or self.now().date().isoformat()
            self._mark_completed_locally(slot, day)
            await self.bus.post(BusMessage.mark_meal_completed(slot, day), timeout=self.request_timeout)
            return
        await self.notifier.open_view(data.get("url") or MEALS_URL)

    def _mark_completed_locally(self, slot: str, day: str) -> None:
        self.cache.put(MEALS, with_meal_completed(self.cache.get(MEALS), slot, day))

    async def handle_message(self, message: BusMessage) -> Any:
        """Messages the foreground app sends to the scheduler."""
        if message.type == MessageType.CHECK_MEALS_NOW:
            result = await self.check_now()
            return {"notified": result.notified, "next_check_at": result.next_check_at.isoformat()}
        if message.type == MessageType.CACHE_LOCAL_STORAGE and message.key:
            self.cache.put(message.key, message.value)
            return True
        logger.debug(f"[Wake] Ignoring {message.type.value}")
        return None
