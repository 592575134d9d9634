from datetime import datetime, date
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PolicyResultRead(CamelModel):
    type: str
    sent: int
    errors: List[str] = Field(default_factory=list)
    no_endpoints: int = 0


class TickResponse(CamelModel):
    """Response of the cron trigger"""
    success: bool = True
    timestamp: datetime
    total_sent: int
    total_users: int
    results: List[PolicyResultRead] = Field(default_factory=list)
    truncated: bool = False
    skipped: int = 0


class DeviceEndpointCreate(BaseModel):
    user_id: str
    token: str = Field(..., min_length=1)
    platform: Optional[str] = Field(default=None, pattern="^(ios|android|web)$")


class DeviceEndpointDelete(BaseModel):
    user_id: str
    token: str


class DeviceEndpointRead(BaseModel):
    id: str
    user_id: str
    token: str
    platform: Optional[str]
    created_at: datetime
    last_used_at: datetime


class MealCompletionCreate(BaseModel):
    user_id: str
    completed: bool = True
    # Local calendar day; defaults to today in the user's timezone
    day: Optional[date] = None


class MealDayRead(BaseModel):
    user_id: str
    date: date
    slot: str
    completed: bool
    notified_at: Optional[datetime] = None


class NotificationTypeRead(BaseModel):
    value: str
    label: str
    description: str
    action: str
