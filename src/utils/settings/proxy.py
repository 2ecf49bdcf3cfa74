"""Outbound proxy pool settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class ProxySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROXY_CACHE_TTL_SECONDS: int = 30 * 60
    PROXY_CACHE_MAX_SIZE: int = 1024
    PROXY_HEALTH_CHECK_URL: str = "https://httpbin.org/ip"
    PROXY_HEALTH_CHECK_TIMEOUT: int = 10
    PROXY_HEALTH_CHECK_CONCURRENCY: int = 10
    PROXY_FAILURE_THRESHOLD: int = 10
    PROXY_SUGGESTION_LIMIT: int = 10
