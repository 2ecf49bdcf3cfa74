"""Background job schedule settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    PROXY_HEALTH_CHECK_INTERVAL_MINUTES: int = 5
    PAYMENT_CLEANUP_INTERVAL_MINUTES: int = 5
    PAYMENT_POLL_INTERVAL_SECONDS: int = 60
    QUOTA_RESET_HOUR: int = 0
