# jobtrack/core/config.py
from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings, loaded from environment variables and/or .env file.
    """

    # Environment settings
    APP_NAME: str = "jobtrack"
    APP_ENV: str = "development"

    # Database settings
    DATABASE_URL: str = "sqlite:///./jobtrack.db"

    # Celery settings
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"
    CELERY_NOTIFICATION_QUEUE: str = "notifications"

    # Observability settings
    SENTRY_DSN: Optional[str] = None

    # Rate limiting (fixed window) defaults
    RATE_LIMIT_DEFAULT_WINDOW_SECONDS: int = Field(default=15 * 60, gt=0)
    RATE_LIMIT_DEFAULT_MAX_REQUESTS: int = Field(default=5, gt=0)

    # Security event history
    SECURITY_EVENT_RETENTION_SECONDS: int = Field(default=24 * 3600, gt=0)
    SECURITY_EVENT_MAX_PER_SUBJECT: int = Field(default=100, gt=0)
    SECURITY_EVENT_ARCHIVE_DAYS: int = Field(default=30, gt=0)

    # Anomaly detection
    SUSPICIOUS_FAILURE_THRESHOLD: int = Field(default=3, gt=0)
    SUSPICIOUS_FAILURE_WINDOW_SECONDS: int = Field(default=15 * 60, gt=0)
    SUSPICIOUS_DAILY_FAILURE_LIMIT: int = Field(default=10, gt=0)
    SUSPICIOUS_DISTINCT_IP_LIMIT: int = Field(default=5, gt=0)

    # Background job scheduler
    SCHEDULER_POLL_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    SCHEDULER_MAX_RETRIES: int = Field(default=3, ge=0)
    SCHEDULER_DISPATCH_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    SCHEDULER_MAX_CONCURRENT_DISPATCHES: int = Field(default=10, gt=0)
    SCHEDULER_SHUTDOWN_DRAIN_SECONDS: float = Field(default=10.0, ge=0)
    SCHEDULER_TIMEZONE: str = "UTC"

    @field_validator("SCHEDULER_TIMEZONE")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        """Reject timezone names pytz does not know about."""
        import pytz

        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
