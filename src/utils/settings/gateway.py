"""AI gateway settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    GATEWAY_TEXT_COST: int = 1
    GATEWAY_IMAGE_COST: int = 2
    GATEWAY_UPSTREAM_TIMEOUT: int = 30
    GATEWAY_MAX_PROMPT_LENGTH: int = 32_000
    GATEWAY_DEFAULT_PROVIDERS: list[str] = [
        "Gemini",
        "OpenAI",
        "DeepSeek",
        "Stability AI",
    ]

    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_DEFAULT_MODEL: str = "gemini-1.5-flash"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_DEFAULT_MODEL: str = "gpt-4o-mini"
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com/v1"
    DEEPSEEK_DEFAULT_MODEL: str = "deepseek-chat"
    STABILITY_BASE_URL: str = "https://api.stability.ai/v1"
    STABILITY_ENGINE: str = "stable-diffusion-xl-1024-v1-0"
