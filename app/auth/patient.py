import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.auth.otp import OTPManager
from app.auth.tokens import TokenIssuer
from app.auth.validators import mask_phone, validate_otp_code, validate_phone_number
from app.errors import InvalidCredentials, ValidationFailed
from app.models.user import User, UserRole, new_id
from app.services.sms import SMSService

logger = logging.getLogger(__name__)


class PatientAuthService:
    """Passwordless patient login: SMS code in, token pair out."""

    def __init__(self, otp: OTPManager, tokens: TokenIssuer, sms: SMSService):
        self.otp = otp
        self.tokens = tokens
        self.sms = sms

    async def request_code(self, db: Session, phone: str) -> None:
        if not validate_phone_number(phone):
            raise ValidationFailed("Phone number must be in E.164 format starting with +91")
        code = self.otp.issue(db, phone)
        await self.sms.send_otp(phone, code)
        logger.info("OTP issued for %s", mask_phone(phone))

    @staticmethod
    def find_user_by_phone(db: Session, phone: str) -> Optional[User]:
        return db.query(User).filter(User.phone == phone).first()

    def _login_user(self, db: Session, phone: str) -> User:
        now = datetime.utcnow()
        user = self.find_user_by_phone(db, phone)
        if user is None:
            user = User(id=new_id(), phone=phone, role=UserRole.PATIENT, last_login=now)
            db.add(user)
            logger.info("Created patient account for %s", mask_phone(phone))
        else:
            user.last_login = now
            user.updated_at = now
        db.commit()
        db.refresh(user)
        return user

    async def verify_and_login(self, db: Session, phone: str, code: str) -> dict:
        if not validate_phone_number(phone) or not validate_otp_code(code):
            raise ValidationFailed("Invalid phone number or OTP format")

        self.otp.verify(db, phone, code)
        user = self._login_user(db, phone)
        pair = self.tokens.issue_token_pair(user, self.tokens.patient)
        return {
            "user": {
                "user_id": user.id,
                "phone_number": user.phone,
                # Filled in once the patient completes their profile
                "full_name": user.full_name,
            },
            **pair.as_dict(),
        }

    async def refresh(self, db: Session, refresh_token: str) -> dict:
        claims = self.tokens.verify_refresh_token(refresh_token)
        user = db.get(User, claims["sub"])
        if user is None or user.role != UserRole.PATIENT:
            raise InvalidCredentials("Invalid or expired refresh token")
        return self.tokens.issue_token_pair(user, self.tokens.patient).as_dict()
