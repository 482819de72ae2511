import secrets
from typing import Optional

from passlib.context import CryptContext

from app.constants import STAFF_TEMP_PASSWORD_LENGTH, TEMP_PASSWORD_ALPHABET


class PasswordManager:
    def __init__(self, rounds: int = 10):
        self.pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        if not password_hash:
            return False
        return self.pwd_context.verify(password, password_hash)

    def dummy_verify(self) -> None:
        """Spend the time of a real comparison when there is no hash to compare."""
        self.pwd_context.dummy_verify()

    @staticmethod
    def generate_temporary_password(length: int = STAFF_TEMP_PASSWORD_LENGTH) -> str:
        return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))
