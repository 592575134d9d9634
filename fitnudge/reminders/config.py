from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class ReminderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REMINDER_", env_file=".env", extra="ignore")

    # Tick execution
    TICK_DEADLINE_SECONDS: float = 8.0
    MAX_PARALLEL_PAIRS: int = 1

    # Schedule matching. None = exact local hour; N = within +/- N/2 minutes of target
    MATCH_WINDOW_MINUTES: Optional[int] = None
    DEFAULT_TARGET_HOUR: int = 9

    # Meal reminders
    MEAL_REMINDER_DELAY_MINUTES: int = 60
    MEAL_COOLDOWN_MINUTES: int = 60
    ACTIVE_RECENTLY_MINUTES: int = 15

    # Dedup claims left pending longer than this are considered abandoned
    CLAIM_STALE_MINUTES: int = 10

    # Celery configuration
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    WORKER_CONCURRENCY: int = 4

    # FCM
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env
    PUSH_TTL_SECONDS: int = 7200

    # Metrics
    METRICS_ENABLED: bool = True


settings = ReminderSettings()
