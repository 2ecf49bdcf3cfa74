"""PayOS settlement backend settings."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class PayOSSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PAYOS_CLIENT_ID: str = ""
    PAYOS_API_KEY: SecretStr = SecretStr("")
    PAYOS_CHECKSUM_KEY: SecretStr = SecretStr("")
    PAYOS_TIMEOUT: int = 15
    # Paths appended to AppSettings.PUBLIC_BASE_URL
    PAYOS_RETURN_PATH: str = "/payment/success"
    PAYOS_CANCEL_PATH: str = "/payment/cancel"

    @property
    def is_configured(self) -> bool:
        return bool(
            self.PAYOS_CLIENT_ID
            and self.PAYOS_API_KEY.get_secret_value()
            and self.PAYOS_CHECKSUM_KEY.get_secret_value()
        )
