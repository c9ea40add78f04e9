"""Runtime configuration for the notification engine."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"


class Settings(BaseSettings):
    """Engine settings read from the environment and an optional ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./notifications.db",
        description="Async SQLAlchemy connection URL",
        min_length=1,
    )
    secret_key: str = Field(
        description="Secret key for signing JWT tokens", min_length=1
    )
    access_token_expire_minutes: int = Field(
        default=60,
        description="Number of minutes before access tokens expire",
        gt=0,
    )
    app_timezone: str = Field(
        default="UTC",
        description="Timezone used for stored timestamps and cron ticks",
    )
    log_level: str = Field(default="INFO", description="Root logging level")
    cors_origins: list[str] = Field(
        default_factory=list,
        description="Origins allowed to call the API from a browser, as a JSON list",
    )

    sendgrid_api_key: str | None = Field(
        default=None,
        description="SendGrid API key for the email channel",
    )
    sendgrid_sender: str | None = Field(
        default=None,
        description="From address of email notifications",
        min_length=3,
    )

    push_endpoint_url: str | None = Field(
        default=None,
        description="HTTP endpoint of the push delivery service; unset simulates delivery",
    )
    push_server_key: str | None = Field(
        default=None, description="Authorization key sent to the push delivery service"
    )
    push_timeout_seconds: float = Field(default=10.0, gt=0)

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis instance holding the delivery queues",
    )
    queue_name_prefix: str = Field(default="notifications", min_length=1)
    queue_workers: int = Field(
        default=2, description="Concurrent workers per logical queue", gt=0
    )
    queue_email_backoff_seconds: float = Field(default=1.0, ge=0)
    queue_push_backoff_seconds: float = Field(default=2.0, ge=0)
    queue_backoff_multiplier: float = Field(default=2.0, ge=1)
    queue_recent_jobs_limit: int = Field(default=10, gt=0)
    queue_lock_timeout_seconds: int = Field(
        default=300,
        description="Age after which a claimed notification is considered abandoned",
        gt=0,
    )
    queue_poll_delay_seconds: float = Field(
        default=0.5, description="Pause between two polls of a queue by its worker", gt=0
    )
    queue_result_ttl_seconds: int = Field(
        default=3600, description="How long finished jobs stay visible to the admin API", gt=0
    )

    scheduler_enabled: bool = True
    scheduler_skip_overlapping: bool = Field(
        default=True,
        description="Skip a tick when the previous run of the same family is still busy",
    )
    sweep_batch_size: int = Field(default=100, gt=0)
    reminder_suppression_hours: int = Field(
        default=0,
        description="Skip a reminder when the user got the same one within this window; 0 disables",
        ge=0,
    )
    inactive_after_days: int = Field(default=7, gt=0)
    enrollment_reminder_after_days: int = Field(default=3, gt=0)
    stalled_progress_after_days: int = Field(default=7, gt=0)
    weekly_summary_weekday: int | None = Field(
        default=None,
        description="Weekday (0=Monday) on which the weekly summary rule runs; unset runs it every campaign",
        ge=0,
        le=6,
    )
    analytics_retention_days: int = Field(default=365, gt=0)
    activity_retention_days: int = Field(default=180, gt=0)

    @model_validator(mode="after")
    def _validate_sendgrid_pair(self) -> "Settings":
        if bool(self.sendgrid_api_key) ^ bool(self.sendgrid_sender):
            raise ValueError(
                "SENDGRID_API_KEY and SENDGRID_SENDER must be set together"
            )
        if self.sendgrid_sender and "@" not in self.sendgrid_sender:
            raise ValueError("SENDGRID_SENDER must be a valid email address")
        return self


@lru_cache
def get_settings() -> Settings:
    """Load the settings once per process."""

    return Settings()


def reset_settings_cache() -> None:
    """Drop cached settings and the derived timezone so the next call rereads them."""

    get_settings.cache_clear()

    from notification_engine.utils.datetime import get_app_timezone

    get_app_timezone.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
