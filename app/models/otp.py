from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from app.database import Base
from app.models.user import new_id


class OneTimeCode(Base):
    __tablename__ = "otp_codes"

    id = Column(String(36), primary_key=True, default=new_id)
    # Phone number without the leading "+", e.g. 919876543210
    number = Column(String(20), index=True, nullable=False)
    code = Column(Integer, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
