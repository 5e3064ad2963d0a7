"""
Runtime settings for the Hijabi Inoor backend.

Values come from environment variables (or a local .env file) and are read once
at import time.
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: str = "hijabi_inoor"

    SUMUP_API_URL: str = "https://api.sumup.com/v0.1"
    SUMUP_MERCHANT_CODE: str = ""
    SUMUP_API_KEY: Optional[str] = None
    SUMUP_TIMEOUT: float = 15.0

    PUBLIC_URL: str = "http://localhost:3001"
    WHATSAPP_PHONE: str = "33600000000"

    CURRENCY: str = "EUR"
    SHIPPING_COST: float = 0.0
    ORDER_REFERENCE_PREFIX: str = "HN"

    LOG_LEVEL: str = "INFO"


settings = Settings()
