"""Configuration for the PORTA'M validation service."""

from typing import Optional, Tuple
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings."""

    # API Settings
    API_TITLE = "PORTA'M Validation Service"
    API_VERSION = "1.1.0"
    API_DESCRIPTION = (
        "Tap-in fare validation for the PORTA'M public transport ticketing platform"
    )

    # Database Settings
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./portam_validation.db")
    DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "10"))

    # Cache / lock Settings
    REDIS_URL = os.getenv("REDIS_URL", "")
    ZONES_CACHE_TTL = int(os.getenv("ZONES_CACHE_TTL", "300"))
    LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5"))
    LOCK_TTL_SECONDS = float(os.getenv("LOCK_TTL_SECONDS", "30"))

    # CORS Settings
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Messages
    SUPPORTED_LOCALES: Tuple[str, ...] = ("ca", "en", "es")
    DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "en")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "50"))

    @classmethod
    def resolve_locale(cls, requested: Optional[str] = None) -> str:
        """
        Pick the message locale for a request.

        Accepts a bare tag ("es"), a regional tag ("es-ES") or a full
        Accept-Language header ("ca-ES,ca;q=0.9,en;q=0.8"); only the first
        tag is considered. Unknown locales fall back to DEFAULT_LOCALE.
        """
        if requested:
            tag = requested.split(",")[0].split(";")[0].strip().lower()
            language = tag.split("-")[0]
            if language in cls.SUPPORTED_LOCALES:
                return language
        if cls.DEFAULT_LOCALE in cls.SUPPORTED_LOCALES:
            return cls.DEFAULT_LOCALE
        return "en"


settings = Settings()
