from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from urllib.parse import quote_plus
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "FitNudge"
    VERSION: str = "0.1.0"

    # Database - PostgreSQL in deployed environments
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: Optional[int] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Timezone used when a user has none (or an unknown one) configured
    DEFAULT_TIMEZONE: str = "Asia/Kolkata"

    # Shared secret expected as "Authorization: Bearer <secret>" on the cron trigger
    CRON_SECRET: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    def _postgres_uri(self) -> Optional[str]:
        if not (self.POSTGRES_USER and self.POSTGRES_SERVER and self.POSTGRES_PORT and self.POSTGRES_DB):
            return None
        credentials = quote_plus(self.POSTGRES_USER)
        if self.POSTGRES_PASSWORD:
            credentials += ":" + quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql://{credentials}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @model_validator(mode="after")
    def _derive_defaults(self) -> "Settings":
        if not self.SQLALCHEMY_DATABASE_URI:
            # Local development falls back to a file database
            self.SQLALCHEMY_DATABASE_URI = self._postgres_uri() or "sqlite:///./fitnudge.db"

        # A blank secret must not authorize an empty bearer token
        if self.CRON_SECRET is not None and not self.CRON_SECRET.strip():
            self.CRON_SECRET = None

        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION


settings = Settings()
