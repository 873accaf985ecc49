from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    DATABASE_URL: str
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    # Shared number used by tenants that onboard with a join code
    TWILIO_PHONE_NUMBER: str = ""
    PUBLIC_WEBHOOK_URL: Optional[str] = None
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    HISTORY_LIMIT: int = 6
    DISPLAY_TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings():
    return Settings()
