from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user, get_patient_auth, get_staff_auth
from app.auth.patient import PatientAuthService
from app.auth.staff import StaffAuthService
from app.config import Settings
from app.database import get_db
from app.errors import InsufficientPermissions
from app.models.user import User, UserRole
from app.schemas.auth import (
    ChangePasswordRequest,
    ErrorResponse,
    MessageResponse,
    OTPRequest,
    OTPVerifyRequest,
    PatientLoginResponse,
    RefreshRequest,
    StaffLoginRequest,
    StaffLoginResponse,
    TokenResponse,
    UserResponse,
)

router = APIRouter()


def build_limiter(settings: Settings) -> Limiter:
    return Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


def otp_request_router(limiter: Limiter, rate_limit: str) -> APIRouter:
    """Routes that send SMS, limited per client address by the app's own limiter."""
    otp_router = APIRouter()

    @otp_router.post(
        "/patient/otp/request",
        response_model=MessageResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid phone number"},
            429: {"model": ErrorResponse, "description": "Too Many Requests"},
            502: {"model": ErrorResponse, "description": "SMS provider failure"},
        },
    )
    @limiter.limit(rate_limit)
    async def request_patient_otp(
        data: OTPRequest,
        request: Request,
        db: Session = Depends(get_db),
        patient_auth: PatientAuthService = Depends(get_patient_auth),
    ):
        await patient_auth.request_code(db, data.phone_number)
        return {"success": True, "message": "OTP sent successfully"}

    return otp_router


@router.post(
    "/patient/otp/verify",
    response_model=PatientLoginResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid format, invalid or expired OTP"},
        429: {"model": ErrorResponse, "description": "Too many wrong codes"},
    },
)
async def verify_patient_otp(
    data: OTPVerifyRequest,
    db: Session = Depends(get_db),
    patient_auth: PatientAuthService = Depends(get_patient_auth),
):
    result = await patient_auth.verify_and_login(db, data.phone_number, data.otp_code)
    return {"success": True, "data": result}


@router.post(
    "/patient/refresh",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or expired refresh token"}},
)
async def refresh_patient_token(
    data: RefreshRequest,
    db: Session = Depends(get_db),
    patient_auth: PatientAuthService = Depends(get_patient_auth),
):
    return {"success": True, "data": await patient_auth.refresh(db, data.refresh_token)}


@router.post(
    "/staff/login",
    response_model=StaffLoginResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Domain not allowed or invalid credentials"},
        403: {"model": ErrorResponse, "description": "Role does not match email domain"},
        423: {"model": ErrorResponse, "description": "Account locked"},
    },
)
async def staff_login(
    data: StaffLoginRequest,
    db: Session = Depends(get_db),
    staff_auth: StaffAuthService = Depends(get_staff_auth),
):
    return {"success": True, "data": staff_auth.login(db, data.email, data.password)}


@router.post(
    "/staff/refresh",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or expired refresh token"}},
)
async def refresh_staff_token(
    data: RefreshRequest,
    db: Session = Depends(get_db),
    staff_auth: StaffAuthService = Depends(get_staff_auth),
):
    return {"success": True, "data": staff_auth.refresh(db, data.refresh_token)}


@router.post(
    "/staff/password",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse, "description": "Current password is incorrect"}},
)
async def change_staff_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    staff_auth: StaffAuthService = Depends(get_staff_auth),
):
    if not current_user.is_staff:
        raise InsufficientPermissions("Only staff accounts have passwords")
    staff_auth.change_password(db, current_user, data.current_password, data.new_password)
    return {"success": True, "message": "Password updated"}


@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return UserResponse(
        id=current_user.id,
        role=UserRole(current_user.role).value,
        phone=current_user.phone,
        email=current_user.email,
        full_name=current_user.full_name,
        hospital_id=current_user.hospital_id,
        requires_password_change=bool(current_user.force_password_change or current_user.password_is_temporary),
        created_at=current_user.created_at,
        last_login=current_user.last_login,
    )
