from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.settings.admin import AdminSettings


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SERVICE_NAME: str = "creditgate-api"
    DEBUG: bool = False
    ENVIRONMENT: str = "DEV"
    API_VERSION: str = "0.1.0"
    # Base for PayOS return/cancel URLs
    PUBLIC_BASE_URL: str = "http://localhost:8010"
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.upper() == "PROD"

    def validate_prod(self) -> None:
        """Refuse to start a production instance with development defaults."""
        if not self.is_production:
            return
        if not self.CORS_ORIGINS:
            raise ValueError("CORS_ORIGINS must be set in production")
        if not self.PUBLIC_BASE_URL.startswith("https://"):
            raise ValueError("PUBLIC_BASE_URL must be an https URL in production")
        if not AdminSettings().ADMIN_API_TOKEN.get_secret_value():
            raise ValueError("ADMIN_API_TOKEN must be set in production")
