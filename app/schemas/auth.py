from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.auth.validators import validate_otp_code, validate_phone_number
from app.constants import MIN_PASSWORD_LENGTH


class PhoneNumberMixin(BaseModel):
    phone_number: str = Field(..., description="Indian mobile number in the format +91XXXXXXXXXX")

    @field_validator("phone_number")
    @classmethod
    def check_phone_number(cls, value: str) -> str:
        if not validate_phone_number(value):
            raise ValueError("Phone number must be in E.164 format starting with +91")
        return value


class OTPRequest(PhoneNumberMixin):
    pass


class OTPVerifyRequest(PhoneNumberMixin):
    otp_code: str = Field(..., description="4 digit code received by SMS")

    @field_validator("otp_code")
    @classmethod
    def check_otp_code(cls, value: str) -> str:
        if not validate_otp_code(value):
            raise ValueError("OTP must be 4 digits")
        return value


class StaffLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class TokenData(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int


class TokenResponse(BaseModel):
    success: bool = True
    data: TokenData


class PatientUser(BaseModel):
    user_id: str
    phone_number: str
    full_name: Optional[str] = None


class PatientLoginData(TokenData):
    user: PatientUser


class PatientLoginResponse(BaseModel):
    success: bool = True
    data: PatientLoginData


class StaffUser(BaseModel):
    user_id: str
    email: str
    full_name: Optional[str] = None
    role: str
    hospital_id: Optional[str] = None
    hospital_name: Optional[str] = None
    permissions: List[str]


class StaffLoginData(TokenData):
    user: StaffUser
    first_login: bool
    requires_password_change: bool


class StaffLoginResponse(BaseModel):
    success: bool = True
    data: StaffLoginData


class UserResponse(BaseModel):
    id: str
    role: str
    phone: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    hospital_id: Optional[str] = None
    requires_password_change: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class ErrorResponse(BaseModel):
    success: bool = False
    code: str
    message: str
