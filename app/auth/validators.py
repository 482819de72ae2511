import re
import secrets

from app.constants import OTP_MAX, OTP_MIN, OTP_REGEX, PHONE_REGEX

_PHONE_RE = re.compile(PHONE_REGEX)
_OTP_RE = re.compile(OTP_REGEX)


def validate_phone_number(phone) -> bool:
    """True for +91 followed by exactly 10 digits."""
    return isinstance(phone, str) and _PHONE_RE.fullmatch(phone) is not None and phone.isascii()


def validate_otp_code(code) -> bool:
    """True for exactly 4 ASCII digits."""
    return isinstance(code, str) and code.isascii() and _OTP_RE.fullmatch(code) is not None


def generate_otp_code() -> int:
    return OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1)


def mask_phone(phone: str) -> str:
    """+919876543210 -> +91******3210, for log lines."""
    if not phone or len(phone) < 7:
        return "***"
    return f"{phone[:3]}{'*' * (len(phone) - 7)}{phone[-4:]}"
