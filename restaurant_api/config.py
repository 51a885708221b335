from __future__ import annotations
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_NUMBER = "2095978565"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "restaurant"

    # WhatsApp notifications: Twilio or Meta Cloud API, else log only
    WHATSAPP_ADMIN_NUMBER: str = DEFAULT_ADMIN_NUMBER
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_WHATSAPP_NUMBER: Optional[str] = None
    WHATSAPP_API_KEY: Optional[str] = None
    WHATSAPP_PHONE_NUMBER_ID: Optional[str] = None

    # Only read by /seed
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    SESSION_TTL_HOURS: int = 720
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    @model_validator(mode="after")
    def check_integrations(self) -> "Settings":
        if not self.WHATSAPP_ADMIN_NUMBER.strip():
            raise ValueError("WHATSAPP_ADMIN_NUMBER must not be empty")
        if self.TWILIO_ACCOUNT_SID and not (self.TWILIO_AUTH_TOKEN and self.TWILIO_WHATSAPP_NUMBER):
            raise ValueError("TWILIO_ACCOUNT_SID requires TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_NUMBER")
        if self.WHATSAPP_API_KEY and not self.WHATSAPP_PHONE_NUMBER_ID:
            raise ValueError("WHATSAPP_API_KEY requires WHATSAPP_PHONE_NUMBER_ID")
        if self.SESSION_TTL_HOURS <= 0:
            raise ValueError("SESSION_TTL_HOURS must be positive")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
