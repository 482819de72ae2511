import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.auth.validators import generate_otp_code, mask_phone
from app.config import Settings
from app.database import Database, atomic
from app.errors import ExpiredOTP, InvalidOTP, OTPAttemptsExceeded
from app.models.otp import OneTimeCode

logger = logging.getLogger(__name__)


def storage_number(phone: str) -> str:
    """Codes are stored against the number without its leading "+"."""
    return phone[1:] if phone.startswith("+") else phone


class OTPManager:
    """
    Issues, consumes and expires one-time codes per phone number.

    A number has at most one live code: issuing replaces every earlier code
    in the same transaction. A code is removed when it is used, when it is
    found expired, or when too many wrong guesses have been made against it.
    Wrong guesses below that limit keep the code so typos can be retried.
    """

    def __init__(self, settings: Settings):
        self.expiry = timedelta(minutes=settings.OTP_EXPIRY_MINUTES)
        self.max_attempts = settings.MAX_OTP_ATTEMPTS

    def issue(self, db: Session, phone: str, now: Optional[datetime] = None) -> str:
        number = storage_number(phone)
        code = generate_otp_code()
        with atomic(db):
            superseded = (
                db.query(OneTimeCode)
                .filter(OneTimeCode.number == number)
                .delete(synchronize_session=False)
            )
            db.add(OneTimeCode(number=number, code=code, created_at=now or datetime.utcnow()))
        if superseded:
            logger.info("Replaced %d earlier code(s) for %s", superseded, mask_phone(phone))
        return str(code)

    def _latest(self, db: Session, number: str) -> Optional[OneTimeCode]:
        return (
            db.query(OneTimeCode)
            .filter(OneTimeCode.number == number)
            .order_by(OneTimeCode.created_at.desc())
            .first()
        )

    def _consume(self, db: Session, code_id: str) -> bool:
        # Conditional delete: only one caller can remove the row
        with atomic(db):
            deleted = (
                db.query(OneTimeCode)
                .filter(OneTimeCode.id == code_id)
                .delete(synchronize_session=False)
            )
        return deleted == 1

    def _record_wrong_guess(self, db: Session, code_id: str) -> Optional[int]:
        """
        Count a wrong guess against a code and return the stored total.

        The increment happens in the database so parallel guesses all count.
        Once the total reaches the limit the code is deleted in the same
        transaction. Returns None when the code is already gone.
        """
        with atomic(db):
            db.query(OneTimeCode).filter(OneTimeCode.id == code_id).update(
                {OneTimeCode.attempts: OneTimeCode.attempts + 1}, synchronize_session=False
            )
            attempts = db.query(OneTimeCode.attempts).filter(OneTimeCode.id == code_id).scalar()
            if attempts is not None and attempts >= self.max_attempts:
                db.query(OneTimeCode).filter(OneTimeCode.id == code_id).delete(synchronize_session=False)
        return attempts

    def verify(self, db: Session, phone: str, code: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.utcnow()
        record = self._latest(db, storage_number(phone))
        if record is None:
            raise InvalidOTP("Invalid or expired OTP")

        if now > record.created_at + self.expiry:
            self._consume(db, record.id)
            logger.info("Expired code presented for %s", mask_phone(phone))
            raise ExpiredOTP()

        if record.code != int(code):
            attempts = self._record_wrong_guess(db, record.id)
            if attempts is None:
                raise InvalidOTP("Invalid or expired OTP")
            if attempts >= self.max_attempts:
                logger.warning("Code for %s discarded after %d wrong attempts", mask_phone(phone), attempts)
                raise OTPAttemptsExceeded()
            raise InvalidOTP()

        if not self._consume(db, record.id):
            # Another request used the same code first
            raise InvalidOTP("Invalid or expired OTP")

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.utcnow()) - self.expiry
        with atomic(db):
            removed = (
                db.query(OneTimeCode)
                .filter(OneTimeCode.created_at < cutoff)
                .delete(synchronize_session=False)
            )
        if removed:
            logger.info("Purged %d expired code(s)", removed)
        return removed

    async def run_periodic_sweep(self, database: Database, interval_seconds: int) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            db = database.session()
            try:
                self.purge_expired(db)
            except Exception:
                logger.exception("Expired code sweep failed")
            finally:
                db.close()
