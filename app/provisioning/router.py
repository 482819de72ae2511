import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.errors import InsufficientPermissions
from app.models.user import User, UserRole
from app.provisioning.service import ProvisioningService, hospital_summary
from app.schemas.auth import ErrorResponse

router = APIRouter()


class HospitalCreate(BaseModel):
    hospital_name: str = Field(..., min_length=2, max_length=120)
    admin_email: EmailStr
    admin_full_name: str = Field(..., min_length=1, max_length=120)


class StaffCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=120)


class DoctorCreate(StaffCreate):
    specialty: str = Field(..., min_length=1, max_length=120)


def get_provisioning(request: Request) -> ProvisioningService:
    return request.app.state.provisioning


def require_platform_admin(request: Request, x_admin_key: Optional[str] = Header(default=None)) -> None:
    expected = request.app.state.settings.PLATFORM_ADMIN_KEY
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise InsufficientPermissions("Platform admin key required")


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_platform_admin)],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_hospital(
    data: HospitalCreate,
    db: Session = Depends(get_db),
    provisioning: ProvisioningService = Depends(get_provisioning),
):
    result = provisioning.create_hospital_with_admin(db, data.hospital_name, data.admin_email, data.admin_full_name)
    return {"success": True, "data": result}


@router.get("/{hospital_id}", responses={404: {"model": ErrorResponse}})
async def get_hospital(
    hospital_id: str,
    db: Session = Depends(get_db),
    provisioning: ProvisioningService = Depends(get_provisioning),
):
    return {"success": True, "data": hospital_summary(provisioning.get_hospital(db, hospital_id))}


@router.post(
    "/{hospital_id}/doctors",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_doctor(
    hospital_id: str,
    data: DoctorCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provisioning: ProvisioningService = Depends(get_provisioning),
):
    result = provisioning.create_staff_member(
        db, current_user, hospital_id, data.email, data.full_name, UserRole.DOCTOR, specialty=data.specialty
    )
    return {"success": True, "data": result}


@router.post(
    "/{hospital_id}/pharmacists",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_pharmacist(
    hospital_id: str,
    data: StaffCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provisioning: ProvisioningService = Depends(get_provisioning),
):
    result = provisioning.create_staff_member(
        db, current_user, hospital_id, data.email, data.full_name, UserRole.PHARMACIST
    )
    return {"success": True, "data": result}
