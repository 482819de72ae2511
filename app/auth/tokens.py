from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from app.auth.permissions import permissions_for
from app.config import Settings
from app.constants import PATIENT_TOKEN_EXPIRES_IN, STAFF_TOKEN_EXPIRES_IN, TOKEN_TYPE
from app.errors import InvalidCredentials, InvalidToken
from app.models.user import User, UserRole

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenProfile:
    access_ttl: timedelta
    refresh_ttl: timedelta
    expires_in: int
    # Staff tokens carry hospital and permission claims
    staff_claims: bool = False


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE

    def as_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


class TokenIssuer:
    """Signs and checks access/refresh pairs. Both halves use their own secret."""

    def __init__(self, settings: Settings):
        self.access_secret = settings.JWT_SECRET
        self.refresh_secret = settings.JWT_REFRESH_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.patient = TokenProfile(
            access_ttl=timedelta(hours=settings.PATIENT_ACCESS_TOKEN_EXPIRE_HOURS),
            refresh_ttl=timedelta(days=settings.PATIENT_REFRESH_TOKEN_EXPIRE_DAYS),
            expires_in=PATIENT_TOKEN_EXPIRES_IN,
        )
        self.staff = TokenProfile(
            access_ttl=timedelta(hours=settings.STAFF_ACCESS_TOKEN_EXPIRE_HOURS),
            refresh_ttl=timedelta(hours=settings.STAFF_REFRESH_TOKEN_EXPIRE_HOURS),
            expires_in=STAFF_TOKEN_EXPIRES_IN,
            staff_claims=True,
        )

    def _encode(self, claims: dict, secret: str, ttl: timedelta) -> str:
        to_encode = claims.copy()
        to_encode.update({"exp": datetime.utcnow() + ttl})
        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def issue_token_pair(self, user: User, profile: Optional[TokenProfile] = None) -> TokenPair:
        profile = profile or self.patient
        role = _role_value(user.role)
        access_claims = {"sub": user.id, "role": role, "token_type": ACCESS}
        refresh_claims = {"sub": user.id, "token_type": REFRESH}
        if profile.staff_claims:
            access_claims["hospital_id"] = user.hospital_id
            access_claims["permissions"] = permissions_for(user.role)
            refresh_claims["role"] = role
        return TokenPair(
            access_token=self._encode(access_claims, self.access_secret, profile.access_ttl),
            refresh_token=self._encode(refresh_claims, self.refresh_secret, profile.refresh_ttl),
            expires_in=profile.expires_in,
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> Optional[dict]:
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError:
            return None
        if payload.get("token_type") != expected_type or not payload.get("sub"):
            return None
        return payload

    def verify_refresh_token(self, token: str) -> dict:
        # Bad signature and expiry are reported the same way
        payload = self._decode(token, self.refresh_secret, REFRESH)
        if payload is None:
            raise InvalidCredentials("Invalid or expired refresh token")
        return payload

    def verify_access_token(self, token: str) -> dict:
        payload = self._decode(token, self.access_secret, ACCESS)
        if payload is None:
            raise InvalidToken()
        return payload
