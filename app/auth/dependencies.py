from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.patient import PatientAuthService
from app.auth.staff import StaffAuthService
from app.auth.tokens import TokenIssuer
from app.database import get_db
from app.errors import InvalidToken, TokenMissing
from app.models.user import User
from app.services.sms import SMSService

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.tokens


def get_sms_service(request: Request) -> SMSService:
    return request.app.state.sms


def get_patient_auth(request: Request, sms: SMSService = Depends(get_sms_service)) -> PatientAuthService:
    return PatientAuthService(request.app.state.otp, request.app.state.tokens, sms)


def get_staff_auth(request: Request) -> StaffAuthService:
    return request.app.state.staff_auth


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenIssuer = Depends(get_token_issuer),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise TokenMissing(headers={"WWW-Authenticate": "Bearer"})
    claims = tokens.verify_access_token(credentials.credentials)
    user = db.get(User, claims["sub"])
    if user is None:
        raise InvalidToken(headers={"WWW-Authenticate": "Bearer"})
    return user
