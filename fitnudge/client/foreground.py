"""
Foreground side of the scheduler's message bus.

Answers storage reads from the app's key/value storage, records the sent
ledger and forwards meal completions to the reminders API, which is the
only place the authoritative store is changed.
"""
import asyncio
import logging
import os
from datetime import date
from typing import Any, Dict, Optional

import requests

from .messages import BusMessage, MessageType
from .wake_scheduler import MEALS, with_meal_completed

logger = logging.getLogger(__name__)


def _resolve_base_url() -> str:
    """Resolve the reminders API base URL.
    Tries FITNUDGE_API_URL, then FITNUDGE_API_HOST/FITNUDGE_API_PORT.
    Raises RuntimeError if not configured.
    """
    base_url = os.getenv("FITNUDGE_API_URL")
    if not base_url:
        host = os.getenv("FITNUDGE_API_HOST")
        port = os.getenv("FITNUDGE_API_PORT")
        if host and port:
            base_url = f"http://{host}:{port}"
    if not base_url:
        raise RuntimeError("FITNUDGE_API_URL/host:port not configured")
    return base_url.rstrip("/")


def push_meal_completed(
    user_id: str,
    slot: str,
    day: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: int = 10,
) -> requests.Response:
    """POST a meal completion to the reminders API."""
    url = f"{(base_url or _resolve_base_url()).rstrip('/')}/api/meals/{slot}/complete"
    payload: Dict[str, Any] = {"user_id": user_id, "completed": True}
    if day:
        payload["day"] = day
    return requests.post(url, json=payload, headers={"Content-Type": "application/json"}, timeout=timeout)


class ForegroundApp:
    def __init__(self, user_id: str, storage: Optional[Dict[str, Any]] = None, base_url: Optional[str] = None):
        self.user_id = user_id
        self.storage: Dict[str, Any] = storage if storage is not None else {}
        self.base_url = base_url

    async def handle(self, message: BusMessage) -> Any:
        if message.type == MessageType.GET_LOCAL_STORAGE:
            return self.storage.get(message.key)
        if message.type == MessageType.MARK_NOTIFICATION_SENT:
            ledger = [e for e in self.storage.get("meal_notifications_sent") or [] if e.get("date") == message.date]
            ledger.append({"mealType": message.meal_type, "date": message.date, "timestamp": message.timestamp})
            self.storage["meal_notifications_sent"] = ledger
            return True
        if message.type == MessageType.MARK_MEAL_COMPLETED:
            day = message.date or date.today().isoformat()
            self.storage[MEALS] = with_meal_completed(self.storage.get(MEALS), message.meal_type, day)
            return await asyncio.to_thread(self._complete_meal, message.meal_type, message.date)
        return None

    def _complete_meal(self, slot: str, day: Optional[str] = None) -> bool:
        try:
            r = push_meal_completed(self.user_id, slot, day=day, base_url=self.base_url)
            r.raise_for_status()
        except (requests.RequestException, RuntimeError) as e:
            logger.error(f"[Wake] Failed to mark {slot} completed for user {self.user_id}: {e}")
            return False
        logger.info(f"[Wake] Marked {slot} completed for user {self.user_id}")
        return True
