# carelink/core/config.py
from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Service account JSON used by the Admin SDK
    FIREBASE_CREDENTIALS: str = "carelink/core/firebase_key.json"
    FIREBASE_PROJECT_ID: str = ""

    # Web API key of the Firebase project (password sign-in goes through
    # the Identity Toolkit REST API, the Admin SDK cannot check passwords)
    FIREBASE_WEB_API_KEY: str = ""
    IDENTITY_TOOLKIT_URL: str = "https://identitytoolkit.googleapis.com/v1"
    IDENTITY_TIMEOUT: int = 10

    LOG_LEVEL: str = "INFO"
    DEBUG_MODE: bool = False

    MIN_PASSWORD_LENGTH: int = 6
    MAX_MESSAGE_LENGTH: int = 2000
    DEFAULT_SPECIALTY: str = "General"

    # Seconds between token re-checks on an open live channel
    LIVE_RECHECK_SECONDS: float = 60.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
