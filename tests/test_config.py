import pytest
from pydantic import ValidationError

from app.config import Settings


def test_missing_signing_secrets_refuse_to_load(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("JWT_REFRESH_SECRET", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_blank_signing_secret_rejected(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "   ")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "refresh")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_defaults(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "a")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "b")
    monkeypatch.delenv("BCRYPT_ROUNDS", raising=False)
    settings = Settings(_env_file=None)
    assert settings.OTP_EXPIRY_MINUTES == 5
    assert settings.MAX_OTP_ATTEMPTS == 5
    assert settings.BCRYPT_ROUNDS == 10
    assert settings.PATIENT_ACCESS_TOKEN_EXPIRE_HOURS == 24
    assert settings.PATIENT_REFRESH_TOKEN_EXPIRE_DAYS == 7
    assert not settings.twilio_configured
