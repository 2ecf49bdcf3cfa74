"""Pricing, payment and manual bank transfer settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class BillingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Price per credit (VND) when no package matches the requested amount
    BILLING_FALLBACK_RATE: int = 4545
    BILLING_MAX_FLEXIBLE_CREDITS: int = 10_000
    BILLING_PAYMENT_TTL_MINUTES: int = 30
    BILLING_PACKAGES_CACHE_TTL: int = 300

    # Manual bank transfer fallback
    BANK_NAME: str = "Vietcombank"
    BANK_ACCOUNT_NUMBER: str = "0123456789"
    BANK_ACCOUNT_NAME: str = "NGUYEN VAN A"
    MANUAL_PAYMENT_URL: str = "https://payment.example.com/pay"
