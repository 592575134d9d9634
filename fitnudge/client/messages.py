import time
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel


class MessageType(str, Enum):
    GET_LOCAL_STORAGE = "GET_LOCAL_STORAGE"
    CACHE_LOCAL_STORAGE = "CACHE_LOCAL_STORAGE"
    MARK_NOTIFICATION_SENT = "MARK_NOTIFICATION_SENT"
    MARK_MEAL_COMPLETED = "MARK_MEAL_COMPLETED"
    CHECK_MEALS_NOW = "CHECK_MEALS_NOW"


class BusMessage(BaseModel):
    type: MessageType
    key: Optional[str] = None
    value: Any = None
    meal_type: Optional[str] = None
    date: Optional[str] = None
    timestamp: Optional[float] = None  # epoch milliseconds

    @classmethod
    def get_local_storage(cls, key: str) -> "BusMessage":
        return cls(type=MessageType.GET_LOCAL_STORAGE, key=key)

    @classmethod
    def cache_local_storage(cls, key: str, value: Any) -> "BusMessage":
        return cls(type=MessageType.CACHE_LOCAL_STORAGE, key=key, value=value)

    @classmethod
    def mark_notification_sent(cls, meal_type: str, date: str, timestamp: Optional[float] = None) -> "BusMessage":
        return cls(
            type=MessageType.MARK_NOTIFICATION_SENT,
            meal_type=meal_type,
            date=date,
            timestamp=timestamp if timestamp is not None else time.time() * 1000,
        )

    @classmethod
    def mark_meal_completed(cls, meal_type: str, date: Optional[str] = None) -> "BusMessage":
        return cls(type=MessageType.MARK_MEAL_COMPLETED, meal_type=meal_type, date=date)

    @classmethod
    def check_meals_now(cls) -> "BusMessage":
        return cls(type=MessageType.CHECK_MEALS_NOW)
