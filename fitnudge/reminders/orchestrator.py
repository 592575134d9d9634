"""
Hourly orchestrator.

Loads active policies and notifiable users, then walks every policy/user
pair through evaluator -> meal reconciler -> dedup guard -> dispatcher.
Each pair runs in its own session and its failures are recorded, never
raised. Pairs not reached before the deadline are skipped; the dedup guard
makes the next tick pick them up safely.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from fitnudge.core.database_utils import session_scope
from fitnudge.utils.timezone import utc_now, to_utc_aware, local_date
from .config import ReminderSettings, settings as reminder_settings
from .constants import meal_slot_for
from .dedup import DedupGuard
from .dispatcher import DeliveryDispatcher
from .errors import ConfigFetchError, UserFetchError, PerPairError, NoEndpointsError
from .evaluator import ScheduleEvaluator
from .metrics import (
    reminder_ticks_total, reminder_ticks_truncated_total, reminder_tick_duration_seconds,
    reminders_sent_total, reminders_suppressed_total, reminders_pair_errors_total,
)
from .models import NotificationPolicy, UserPreference
from .placeholders import meal_context
from .push import PushSender
from .reconciler import MealReconciler
from . import repository

logger = logging.getLogger(__name__)

SENT = "sent"
SKIPPED = "skipped"
NO_ENDPOINTS = "no_endpoints"
TRUNCATED = "truncated"


@dataclass
class PolicyOutcome:
    type: str
    sent: int = 0
    errors: List[str] = field(default_factory=list)
    no_endpoints: int = 0


@dataclass
class TickSummary:
    timestamp: datetime
    total_sent: int = 0
    total_users: int = 0
    results: List[PolicyOutcome] = field(default_factory=list)
    truncated: bool = False
    skipped: int = 0
    success: bool = True

    @property
    def errors(self) -> List[str]:
        return [e for r in self.results for e in r.errors]


class ReminderOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        sender: PushSender,
        evaluator: Optional[ScheduleEvaluator] = None,
        guard: Optional[DedupGuard] = None,
        reconciler: Optional[MealReconciler] = None,
        dispatcher: Optional[DeliveryDispatcher] = None,
        deadline_seconds: float = 8.0,
        max_workers: int = 1,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.evaluator = evaluator or ScheduleEvaluator()
        self.guard = guard or DedupGuard()
        self.reconciler = reconciler or MealReconciler()
        self.dispatcher = dispatcher or DeliveryDispatcher(sender, self.guard)
        self.deadline_seconds = deadline_seconds
        self.max_workers = max(1, int(max_workers))
        self._monotonic = monotonic

    @classmethod
    def from_settings(
        cls,
        session_factory: Callable[[], Session],
        sender: PushSender,
        config: Optional[ReminderSettings] = None,
    ) -> "ReminderOrchestrator":
        cfg = config or reminder_settings
        return cls(
            session_factory,
            sender,
            evaluator=ScheduleEvaluator(
                window_minutes=cfg.MATCH_WINDOW_MINUTES,
                default_target_hour=cfg.DEFAULT_TARGET_HOUR,
                meal_delay_minutes=cfg.MEAL_REMINDER_DELAY_MINUTES,
            ),
            guard=DedupGuard(stale_after_minutes=cfg.CLAIM_STALE_MINUTES),
            reconciler=MealReconciler(
                cooldown_minutes=cfg.MEAL_COOLDOWN_MINUTES,
                active_recently_minutes=cfg.ACTIVE_RECENTLY_MINUTES,
                window_minutes=cfg.MATCH_WINDOW_MINUTES,
                delay_minutes=cfg.MEAL_REMINDER_DELAY_MINUTES,
            ),
            deadline_seconds=cfg.TICK_DEADLINE_SECONDS,
            max_workers=cfg.MAX_PARALLEL_PAIRS,
        )

    def _load_inputs(self):
        try:
            with session_scope(self.session_factory) as db:
                policies = repository.list_active_policies(db)
        except Exception as e:
            raise ConfigFetchError(f"Failed to fetch notification policies: {e}") from e
        try:
            with session_scope(self.session_factory) as db:
                users = repository.list_notifiable_users(db)
        except Exception as e:
            raise UserFetchError(f"Failed to fetch users: {e}") from e
        return policies, users

    def run_tick(self, now: Optional[datetime] = None) -> TickSummary:
        """Raises ConfigFetchError / UserFetchError; everything else lands in the summary."""
        now = to_utc_aware(now) if now is not None else utc_now()
        started = self._monotonic()
        reminder_ticks_total.inc()
        logger.info(f"[Cron] Running notification check at {now.isoformat()}")

        policies, users = self._load_inputs()
        summary = TickSummary(timestamp=now, total_users=len(users))
        if not policies or not users:
            logger.info(f"[Cron] Nothing to do | policies={len(policies)} users={len(users)}")
            return summary

        outcomes: Dict[str, PolicyOutcome] = {p.notification_type: PolicyOutcome(type=p.notification_type) for p in policies}
        pairs = [(policy, user) for policy in policies for user in users]

        def run(pair):
            policy, user = pair
            if self._monotonic() - started >= self.deadline_seconds:
                return pair, TRUNCATED, None
            try:
                return pair, self.process_pair(policy, user, now), None
            except Exception as e:
                return pair, None, PerPairError(policy.notification_type, user.user_id, e)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(run, pairs))
        else:
            results = [run(pair) for pair in pairs]

        for (policy, user), status, error in results:
            outcome = outcomes[policy.notification_type]
            if error is not None:
                logger.error(f"[Cron] {error}")
                reminders_pair_errors_total.labels(policy.notification_type).inc()
                outcome.errors.append(str(error))
            elif status == SENT:
                outcome.sent += 1
            elif status == NO_ENDPOINTS:
                outcome.no_endpoints += 1
            elif status == TRUNCATED:
                summary.skipped += 1

        for policy in policies:
            if outcomes[policy.notification_type].sent > 0:
                try:
                    with session_scope(self.session_factory) as db:
                        repository.mark_policy_fired(db, policy.id, now)
                except Exception as e:
                    logger.error(f"[Cron] Failed to update last_fired_at for {policy.notification_type}: {e}")

        summary.results = [outcomes[p.notification_type] for p in policies]
        summary.total_sent = sum(r.sent for r in summary.results)
        summary.truncated = summary.skipped > 0
        if summary.truncated:
            reminder_ticks_truncated_total.inc()
            logger.warning(
                f"[Cron] Deadline of {self.deadline_seconds}s reached, {summary.skipped} pair(s) left for the next tick"
            )
        reminder_tick_duration_seconds.observe(self._monotonic() - started)
        logger.info(f"[Cron] Total notifications sent: {summary.total_sent}")
        return summary

    def process_pair(self, policy: NotificationPolicy, prefs: UserPreference, now: datetime) -> str:
        notification_type = policy.notification_type
        decision = self.evaluator.evaluate(policy, prefs, now)
        logger.debug(f"[Cron] {notification_type} user={prefs.user_id}: {decision.reason}")
        if not decision.fire:
            return SKIPPED

        slot = decision.slot or meal_slot_for(notification_type)
        with session_scope(self.session_factory) as db:
            record = None
            if slot:
                decision, record = self.reconciler.check(db, prefs, slot, now)
                if not decision.fire:
                    reminders_suppressed_total.labels(notification_type, "meal_state").inc()
                    return SKIPPED

            if self.guard.already_sent(db, prefs.user_id, notification_type, now, prefs.timezone):
                logger.debug(f"[Cron] {notification_type} user={prefs.user_id}: Already sent today")
                reminders_suppressed_total.labels(notification_type, "already_sent").inc()
                return SKIPPED

            claim = self.guard.claim(db, prefs.user_id, notification_type, now, prefs.timezone)
            if claim is None:
                reminders_suppressed_total.labels(notification_type, "claimed").inc()
                return SKIPPED

            context = meal_context(slot) if slot else None
            data = {"meal_type": slot, "date": local_date(now, prefs.timezone).isoformat()} if slot else None
            try:
                self.dispatcher.deliver(
                    db,
                    prefs,
                    notification_type,
                    policy.title_template,
                    policy.body_template,
                    now,
                    context=context,
                    data=data,
                    claim=claim,
                )
            except NoEndpointsError:
                self.guard.release(db, claim)
                reminders_suppressed_total.labels(notification_type, "no_endpoints").inc()
                return NO_ENDPOINTS
            except Exception:
                self.guard.release(db, claim)
                raise

            if record is not None:
                self.reconciler.mark_notified(db, record, slot, now)

        reminders_sent_total.labels(notification_type).inc()
        return SENT
