import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    HOSPITAL_ADMIN = "HOSPITAL_ADMIN"
    PHARMACIST = "PHARMACIST"


STAFF_ROLES = (UserRole.DOCTOR, UserRole.HOSPITAL_ADMIN, UserRole.PHARMACIST)


class Hospital(Base):
    __tablename__ = "hospitals"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, unique=True, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    users = relationship("User", back_populates="hospital")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    phone = Column(String, unique=True, index=True, nullable=True)
    email = Column(String, unique=True, index=True, nullable=True)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.PATIENT)
    full_name = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)
    hospital_id = Column(String(36), ForeignKey("hospitals.id"), nullable=True)
    password_is_temporary = Column(Boolean, default=False, nullable=False)
    force_password_change = Column(Boolean, default=False, nullable=False)
    login_attempt_count = Column(Integer, default=0, nullable=False)
    lockout_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    hospital = relationship("Hospital", back_populates="users")
    profile = relationship("StaffProfile", back_populates="user", uselist=False)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class StaffProfile(Base):
    __tablename__ = "staff_profiles"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    hospital_id = Column(String(36), ForeignKey("hospitals.id"), nullable=False)
    specialty = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="profile")
