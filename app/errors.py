"""
API error types.

Every failure the API reports carries a stable machine-readable ``code``
alongside a human ``message``; handlers in ``main.py`` render them as
``{"success": false, "code": ..., "message": ...}``.
"""
from typing import Optional

from fastapi import HTTPException, status


class APIError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "API_ERROR"
    message = "Request failed"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None,
                 status_code: Optional[int] = None, headers: Optional[dict] = None):
        self.code = code or self.code
        self.message = message or self.message
        super().__init__(status_code=status_code or self.status_code, detail=self.message, headers=headers)


class ValidationFailed(APIError):
    code = "VALIDATION_ERROR"
    message = "Invalid input"


class InvalidOTP(APIError):
    code = "INVALID_OTP"
    message = "Invalid OTP"


class ExpiredOTP(APIError):
    code = "EXPIRED_OTP"
    message = "OTP has expired"


class OTPAttemptsExceeded(APIError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "OTP_ATTEMPTS_EXCEEDED"
    message = "Too many incorrect attempts. Please request a new OTP"


class InvalidCredentials(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class DomainNotAllowed(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "DOMAIN_NOT_ALLOWED"
    message = "Email domain not allowed for staff login"


class AccountLocked(APIError):
    status_code = status.HTTP_423_LOCKED
    code = "ACCOUNT_LOCKED"
    message = "Account temporarily locked due to multiple failed attempts"


class InvalidRole(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INVALID_ROLE"
    message = "User role does not match email domain"


class InsufficientPermissions(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INSUFFICIENT_PERMISSIONS"
    message = "You are not allowed to perform this action"


class TokenMissing(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_MISSING"
    message = "Access token is missing"


class InvalidToken(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"
    message = "Invalid or expired token"


class NotFound(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Resource not found"


class Conflict(APIError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    message = "Resource already exists"


class SMSDeliveryFailed(APIError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "SMS_DELIVERY_FAILED"
    message = "Failed to send verification code. Please try again later."
