"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings

from app.services.policy import SystemDefaults


class Settings(BaseSettings):
    # App
    app_name: str = "CourtHub"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Facility-local clock used for "today" and same-day trimming
    timezone: str = "Asia/Karachi"

    # Database
    database_url: str = "postgresql+asyncpg://courthub:courthub@db:5432/courthub"
    database_echo: bool = False
    db_lock_timeout_ms: int = 5000  # surfaced to callers as a retryable LockTimeout

    # Redis
    redis_url: str = "redis://redis:6379/0"

    # Auth (tokens are issued by the account service, we only verify them)
    jwt_algorithm: str = "HS256"

    # System-wide booking policy defaults (court/facility policies override these)
    default_max_advance_booking_days: int = 30
    default_min_duration_minutes: int = 30
    default_max_duration_minutes: int = 480
    default_buffer_minutes: int = 0
    default_min_advance_notice_minutes: int = 0
    default_pending_expiration_hours: int = 24
    same_day_buffer_minutes: int = 60

    # Expiration sweep
    expiration_sweep_seconds: float = 60.0
    expiration_batch_size: int = 100

    model_config = {"env_prefix": "CH_", "env_file": ".env", "extra": "ignore"}

    def system_defaults(self) -> SystemDefaults:
        return SystemDefaults(
            max_advance_booking_days=self.default_max_advance_booking_days,
            min_duration_minutes=self.default_min_duration_minutes,
            max_duration_minutes=self.default_max_duration_minutes,
            buffer_minutes=self.default_buffer_minutes,
            min_advance_notice_minutes=self.default_min_advance_notice_minutes,
            pending_expiration_hours=self.default_pending_expiration_hours,
            same_day_buffer_minutes=self.same_day_buffer_minutes,
        )


settings = Settings()
