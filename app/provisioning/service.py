import logging
import re
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth.passwords import PasswordManager
from app.auth.permissions import permissions_for
from app.auth.staff import resolve_email_domain
from app.config import Settings
from app.constants import ADMIN_TEMP_PASSWORD_LENGTH, STAFF_TEMP_PASSWORD_LENGTH
from app.database import atomic
from app.errors import Conflict, InsufficientPermissions, NotFound, ValidationFailed
from app.models.user import Hospital, StaffProfile, User, UserRole, new_id

logger = logging.getLogger(__name__)


def hospital_slug(name: str) -> str:
    """"City Care" -> "city-care", the label expected in staff email domains."""
    return re.sub(r"\s+", "-", name.strip().lower())


def hospital_summary(hospital: Hospital) -> dict:
    return {
        "id": hospital.id,
        "name": hospital.name,
        "slug": hospital.slug,
        "created_at": hospital.created_at.isoformat() if hospital.created_at else None,
    }


class ProvisioningService:
    """Creates staff accounts that start with a one-time temporary password."""

    def __init__(self, settings: Settings, passwords: PasswordManager):
        self.base_domain = settings.STAFF_EMAIL_DOMAIN
        self.passwords = passwords

    def _staff_summary(self, user: User) -> dict:
        return {
            "user_id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "role": UserRole(user.role).value,
            "hospital_id": user.hospital_id,
            "specialty": user.profile.specialty if user.profile else None,
            "permissions": permissions_for(user.role),
            "requires_first_login": True,
        }

    @staticmethod
    def _email_taken(db: Session, email: str) -> bool:
        return db.query(User.id).filter(User.email == email).first() is not None

    def _new_staff_user(self, email: str, full_name: str, role: UserRole, hospital_id: str,
                        temp_password: str, specialty: Optional[str] = None) -> User:
        user = User(
            id=new_id(),
            email=email,
            full_name=full_name,
            role=role,
            hospital_id=hospital_id,
            password_hash=self.passwords.hash(temp_password),
            password_is_temporary=True,
            force_password_change=True,
        )
        user.profile = StaffProfile(hospital_id=hospital_id, specialty=specialty)
        return user

    def create_hospital_with_admin(self, db: Session, hospital_name: str, admin_email: str,
                                   admin_full_name: str) -> dict:
        admin_email = admin_email.strip().lower()
        slug = hospital_slug(hospital_name)
        domain = resolve_email_domain(admin_email, self.base_domain)
        if domain is None or domain.role != UserRole.HOSPITAL_ADMIN:
            raise ValidationFailed("Admin email must be on the hospital admin domain", code="INVALID_ADMIN_EMAIL")
        if domain.hospital_slug != slug:
            raise ValidationFailed("Hospital name does not match admin email domain", code="HOSPITAL_NAME_MISMATCH")

        existing = db.query(Hospital.id).filter(
            (func.lower(Hospital.name) == hospital_name.strip().lower()) | (Hospital.slug == slug)
        ).first()
        if existing is not None:
            raise Conflict("Hospital already exists", code="HOSPITAL_NAME_EXISTS")
        if self._email_taken(db, admin_email):
            raise Conflict("Admin email already registered", code="ADMIN_EMAIL_EXISTS")

        temp_password = self.passwords.generate_temporary_password(ADMIN_TEMP_PASSWORD_LENGTH)
        with atomic(db):
            hospital = Hospital(id=new_id(), name=hospital_name.strip(), slug=slug)
            db.add(hospital)
            db.flush()
            admin = self._new_staff_user(admin_email, admin_full_name, UserRole.HOSPITAL_ADMIN,
                                         hospital.id, temp_password)
            db.add(admin)
        db.refresh(hospital)
        db.refresh(admin)
        logger.info("Provisioned hospital %s with admin %s", hospital.id, admin.id)

        return {
            "hospital": hospital_summary(hospital),
            "admin": self._staff_summary(admin),
            # Returned once; only the hash is stored
            "temporary_password": temp_password,
        }

    @staticmethod
    def get_hospital(db: Session, hospital_id: str) -> Hospital:
        hospital = db.get(Hospital, hospital_id)
        if hospital is None:
            raise NotFound("Hospital not found", code="HOSPITAL_NOT_FOUND")
        return hospital

    def create_staff_member(self, db: Session, admin: User, hospital_id: str, email: str, full_name: str,
                            role: UserRole, specialty: Optional[str] = None) -> dict:
        if UserRole(admin.role) != UserRole.HOSPITAL_ADMIN:
            raise InsufficientPermissions("You must be a hospital admin to add staff")
        hospital = self.get_hospital(db, hospital_id)
        if admin.hospital_id != hospital.id:
            raise InsufficientPermissions("You can only add staff to your own hospital", code="HOSPITAL_MISMATCH")

        email = email.strip().lower()
        domain = resolve_email_domain(email, self.base_domain)
        if domain is None or domain.role != role or domain.hospital_slug != hospital.slug:
            raise ValidationFailed("Email domain does not match hospital and role", code="EMAIL_DOMAIN_MISMATCH")
        if self._email_taken(db, email):
            raise Conflict("Email already registered", code="EMAIL_EXISTS")

        temp_password = self.passwords.generate_temporary_password(STAFF_TEMP_PASSWORD_LENGTH)
        with atomic(db):
            user = self._new_staff_user(email, full_name, role, hospital.id, temp_password, specialty)
            db.add(user)
        db.refresh(user)
        logger.info("Admin %s provisioned %s %s", admin.id, role.value, user.id)

        return {**self._staff_summary(user), "temporary_password": temp_password}
