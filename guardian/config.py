"""
Guardian configuration: all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    DB_POOL_MIN_SIZE: int = int(os.environ.get("DB_POOL_MIN_SIZE", "2"))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("DB_POOL_MAX_SIZE", "20"))
    DB_COMMAND_TIMEOUT: float = float(os.environ.get("DB_COMMAND_TIMEOUT", "10"))
    DB_ACQUIRE_TIMEOUT: float = float(os.environ.get("DB_ACQUIRE_TIMEOUT", "5"))
    DB_READ_RETRY_BACKOFF: float = float(os.environ.get("DB_READ_RETRY_BACKOFF", "0.2"))

    # Auth
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_HOURS: int = int(os.environ.get("JWT_EXPIRY_HOURS", "168"))

    # Verification / reset codes
    VERIFICATION_CODE_LENGTH: int = 6
    VERIFICATION_CODE_TTL_MINUTES: int = 15
    CODE_RESEND_COOLDOWN_SECONDS: int = 60
    LOGIN_RATE_LIMIT_PER_IP: int = 30  # per 15 minutes

    # Email (Resend)
    RESEND_API_KEY: str = os.environ.get("RESEND_API_KEY", "")
    EMAIL_FROM: str = os.environ.get("EMAIL_FROM", "Guardian <no-reply@guardian.app>")

    # SMS (Twilio REST API)
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_FROM_NUMBER: str = os.environ.get("TWILIO_FROM_NUMBER", "")
    TWILIO_API_URL: str = os.environ.get("TWILIO_API_URL", "https://api.twilio.com/2010-04-01")

    # Google Sign-In
    GOOGLE_CLIENT_ID: str = os.environ.get("GOOGLE_CLIENT_ID", "")
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"

    # Audio storage (R2 / S3)
    R2_ENDPOINT: str = os.environ.get("R2_ENDPOINT", "")
    R2_ACCESS_KEY: str = os.environ.get("R2_ACCESS_KEY", "")
    R2_SECRET_KEY: str = os.environ.get("R2_SECRET_KEY", "")
    R2_AUDIO_BUCKET: str = os.environ.get("R2_AUDIO_BUCKET", "guardian-audio")
    R2_PUBLIC_URL: str = os.environ.get("R2_PUBLIC_URL", "")
    AUDIO_MAX_BYTES: int = 20 * 1024 * 1024

    # Realtime channel
    # When false, any authenticated socket may subscribe to any room id.
    WS_ENFORCE_ROOM_ACCESS: bool = _env_bool("WS_ENFORCE_ROOM_ACCESS", True)
    WS_SEND_QUEUE_SIZE: int = int(os.environ.get("WS_SEND_QUEUE_SIZE", "100"))

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    CORS_ORIGINS: list[str] = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


# Singleton instance
settings = Settings()

if not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
if not settings.JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is required")
