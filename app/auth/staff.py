import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth.passwords import PasswordManager
from app.auth.permissions import permissions_for
from app.auth.tokens import TokenIssuer
from app.config import Settings
from app.constants import MIN_PASSWORD_LENGTH
from app.database import atomic
from app.errors import (
    AccountLocked,
    DomainNotAllowed,
    InvalidCredentials,
    InvalidRole,
    ValidationFailed,
)
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

# Last label of the staff email domain decides the portal
DOMAIN_SUFFIX_ROLES = {
    "in": UserRole.HOSPITAL_ADMIN,
    "com": UserRole.DOCTOR,
    "pharm": UserRole.PHARMACIST,
}


@dataclass(frozen=True)
class StaffDomain:
    hospital_slug: str
    role: UserRole


def resolve_email_domain(email: str, base_domain: str) -> Optional[StaffDomain]:
    """
    Map a staff email to its hospital and portal role.

    ``admin@apollo.curekahealth.in`` is a hospital admin of ``apollo``,
    ``.curekahealth.com`` addresses are doctors and ``.curekahealth.pharm``
    pharmacists. Anything else is not a staff address.
    """
    parts = (email or "").strip().lower().split("@")
    if len(parts) != 2 or not parts[0]:
        return None
    labels = parts[1].split(".")
    if len(labels) != 3 or not labels[0] or labels[1] != base_domain.lower():
        return None
    role = DOMAIN_SUFFIX_ROLES.get(labels[2])
    if role is None:
        return None
    return StaffDomain(hospital_slug=labels[0], role=role)


class StaffAuthService:
    def __init__(self, settings: Settings, passwords: PasswordManager, tokens: TokenIssuer):
        self.base_domain = settings.STAFF_EMAIL_DOMAIN
        self.max_attempts = settings.MAX_LOGIN_ATTEMPTS
        self.lockout = timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
        self.passwords = passwords
        self.tokens = tokens

    def resolve_email_domain(self, email: str) -> Optional[StaffDomain]:
        return resolve_email_domain(email, self.base_domain)

    @staticmethod
    def find_staff_user(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.strip().lower()).first()

    def validate_credentials(self, db: Session, email: str, password: str, now: datetime) -> User:
        user = self.find_staff_user(db, email)
        if user is None or not user.password_hash:
            self.passwords.dummy_verify()
            raise InvalidCredentials()

        if user.lockout_until is not None:
            if user.lockout_until > now:
                logger.warning("Login attempt on locked account %s", user.id)
                raise AccountLocked()
            # Lockout window elapsed, start counting again
            with atomic(db):
                db.query(User).filter(User.id == user.id, User.lockout_until <= now).update(
                    {User.lockout_until: None, User.login_attempt_count: 0}, synchronize_session=False
                )

        if not self.passwords.verify(password, user.password_hash):
            self._record_failed_attempt(db, user.id, now)
            raise InvalidCredentials()

        user.login_attempt_count = 0
        user.lockout_until = None
        db.commit()
        return user

    def _record_failed_attempt(self, db: Session, user_id: str, now: datetime) -> int:
        # Counter is bumped in SQL; the lock decision uses the stored value
        with atomic(db):
            db.query(User).filter(User.id == user_id).update(
                {
                    User.login_attempt_count: func.coalesce(User.login_attempt_count, 0) + 1,
                    User.updated_at: now,
                },
                synchronize_session=False,
            )
            attempts = db.query(User.login_attempt_count).filter(User.id == user_id).scalar() or 0
            if attempts >= self.max_attempts:
                lockout_until = now + self.lockout
                db.query(User).filter(User.id == user_id, User.lockout_until.is_(None)).update(
                    {User.lockout_until: lockout_until}, synchronize_session=False
                )
                logger.warning("Account %s locked until %s", user_id, lockout_until.isoformat())
        return attempts

    def build_login_response(self, user: User) -> dict:
        pair = self.tokens.issue_token_pair(user, self.tokens.staff)
        return {
            "user": {
                "user_id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "role": UserRole(user.role).value,
                "hospital_id": user.hospital_id,
                "hospital_name": user.hospital.name if user.hospital else None,
                "permissions": permissions_for(user.role),
            },
            **pair.as_dict(),
            "first_login": bool(user.password_is_temporary),
            "requires_password_change": bool(user.force_password_change or user.password_is_temporary),
        }

    def login(self, db: Session, email: str, password: str, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        domain = self.resolve_email_domain(email)
        if domain is None:
            raise DomainNotAllowed()

        user = self.validate_credentials(db, email, password, now)

        if UserRole(user.role) != domain.role:
            logger.warning("User %s with role %s tried the %s portal", user.id, user.role, domain.role.value)
            raise InvalidRole()

        if user.hospital is None or user.hospital.slug != domain.hospital_slug:
            logger.warning("User %s signed in with an address for hospital %s", user.id, domain.hospital_slug)
            raise DomainNotAllowed("Email domain does not match your hospital")

        user.last_login = now
        user.updated_at = now
        db.commit()
        db.refresh(user)
        logger.info("Staff login for %s (%s)", user.id, domain.role.value)
        return self.build_login_response(user)

    def refresh(self, db: Session, refresh_token: str) -> dict:
        claims = self.tokens.verify_refresh_token(refresh_token)
        user = db.get(User, claims["sub"])
        if user is None or not user.is_staff:
            raise InvalidCredentials("User not found")
        return self.tokens.issue_token_pair(user, self.tokens.staff).as_dict()

    def change_password(self, db: Session, user: User, current_password: str, new_password: str) -> None:
        if not self.passwords.verify(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if new_password == current_password:
            raise ValidationFailed("New password must differ from the current one")
        with atomic(db):
            user.password_hash = self.passwords.hash(new_password)
            user.password_is_temporary = False
            user.force_password_change = False
            user.updated_at = datetime.utcnow()
        logger.info("Password changed for %s", user.id)
