"""Admin boundary settings."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AdminSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Empty token disables every admin endpoint
    ADMIN_API_TOKEN: SecretStr = SecretStr("")
