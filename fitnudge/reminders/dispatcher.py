import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional
from sqlalchemy.orm import Session

from fitnudge.utils.timezone import to_utc_aware
from .constants import notification_action
from .dedup import DedupGuard
from .errors import DeliveryFailure, NoEndpointsError
from .metrics import (
    reminders_dispatch_success_total, reminders_dispatch_failed_total, endpoints_removed_total,
)
from .models import NotificationLog, UserPreference
from .placeholders import build_context, substitute
from .push import PushSender
from . import repository

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    title: str
    body: str
    success_count: int
    failure_count: int
    removed_endpoints: int
    log: Optional[NotificationLog] = None


class DeliveryDispatcher:
    """Resolve endpoints, send one multicast push, prune invalid endpoints, record the outcome."""

    def __init__(self, sender: PushSender, guard: DedupGuard):
        self.sender = sender
        self.guard = guard

    def deliver(
        self,
        db: Session,
        prefs: UserPreference,
        notification_type: str,
        title_template: str,
        body_template: str,
        now: datetime,
        context: Optional[Mapping[str, str]] = None,
        data: Optional[Dict[str, str]] = None,
        claim: Optional[NotificationLog] = None,
    ) -> DeliveryResult:
        """
        Raises NoEndpointsError when the user has nothing registered and
        DeliveryFailure when no endpoint accepted the push. On success the
        NotificationLog row is written (the given claim is confirmed, or a
        fresh row is claimed and confirmed).
        """
        now = to_utc_aware(now)
        user_id = prefs.user_id
        tokens = repository.list_endpoint_tokens(db, user_id)
        if not tokens:
            logger.info(f"[Dispatch] No push endpoints for user {user_id}")
            raise NoEndpointsError(user_id)

        values = build_context(prefs, now, context)
        title = substitute(title_template, values)
        body = substitute(body_template, values)

        payload = {
            "type": notification_type,
            "action": notification_action(notification_type),
            "timestamp": now.isoformat(),
        }
        if data:
            payload.update(data)

        result = self.sender.send(tokens, title, body, payload)

        removed = 0
        if result.invalid_tokens:
            removed = repository.delete_endpoints(db, user_id, result.invalid_tokens)
            endpoints_removed_total.inc(removed)
            logger.info(f"[Dispatch] Removed {removed} invalid endpoint(s) for user {user_id}")

        if result.success_count <= 0:
            reminders_dispatch_failed_total.inc()
            raise DeliveryFailure(
                result.error or f"0 of {len(tokens)} endpoint(s) accepted {notification_type}"
            )

        reminders_dispatch_success_total.inc()
        invalid = set(result.invalid_tokens)
        repository.touch_endpoints(db, user_id, [t for t in tokens if t not in invalid], now)

        details = {"success_count": result.success_count, "failure_count": result.failure_count}
        if result.error:
            # a later batch failed after earlier devices already received the push
            details["error"] = result.error
        if claim is not None:
            log = self.guard.confirm(db, claim, title, body, details, now)
        else:
            log = self.guard.record(
                db, user_id, notification_type, title, body, details, now, prefs.timezone,
            )
            if log is None:
                logger.warning(f"[Dispatch] {notification_type} for user {user_id} was already logged today")

        logger.info(
            f"[Dispatch] Sent {notification_type} to user {user_id} ({prefs.full_name}) "
            f"| devices={result.success_count}/{len(tokens)}"
        )
        return DeliveryResult(
            title=title,
            body=body,
            success_count=result.success_count,
            failure_count=result.failure_count,
            removed_endpoints=removed,
            log=log,
        )
