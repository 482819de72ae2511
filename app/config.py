from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # JWT
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    PATIENT_ACCESS_TOKEN_EXPIRE_HOURS: int = 24
    PATIENT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    STAFF_ACCESS_TOKEN_EXPIRE_HOURS: int = 2
    STAFF_REFRESH_TOKEN_EXPIRE_HOURS: int = 12

    # OTP
    OTP_EXPIRY_MINUTES: int = 5
    MAX_OTP_ATTEMPTS: int = 5
    OTP_SWEEP_INTERVAL_SECONDS: int = 300
    OTP_REQUEST_RATE_LIMIT: str = "5/15minutes"
    RATE_LIMIT_ENABLED: bool = True

    # Passwords and lockout
    BCRYPT_ROUNDS: int = 10
    MAX_LOGIN_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_MINUTES: int = 30
    STAFF_EMAIL_DOMAIN: str = "curekahealth"
    PLATFORM_ADMIN_KEY: Optional[str] = None

    DATABASE_URL: str = "sqlite:///./cureka.db"

    # Twilio
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None

    DOMAIN: str = "yourdomain.com"
    IS_DEV_ENV: bool = True  # False in production
    LOG_LEVEL: str = "INFO"

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET")
    @classmethod
    def secret_must_be_set(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("signing secret must not be empty")
        return value

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_PHONE_NUMBER)


@lru_cache
def get_settings() -> Settings:
    """Load settings once. Missing signing secrets raise here, at startup."""
    return Settings()
