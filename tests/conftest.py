"""Test configuration and fixtures.

Environment is set before the application is imported so settings load with
test secrets, an isolated SQLite file and rate limiting off. SMS delivery is
replaced by a recording fake.
"""

import os
from typing import Generator, List, Optional, Tuple

os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("PLATFORM_ADMIN_KEY", "test-admin-key")
os.environ["DATABASE_URL"] = "sqlite:///./test_cureka.sqlite"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OTP_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient

from app.auth.dependencies import get_sms_service
from app.database import Base
from app.errors import SMSDeliveryFailed
from app.models.user import Hospital, User, UserRole, new_id
from main import app


class FakeSMS:
    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail = False

    async def send_otp(self, phone: str, code: str) -> str:
        if self.fail:
            raise SMSDeliveryFailed()
        self.sent.append((phone, code))
        return f"SM{len(self.sent)}"

    def last_code(self, phone: str) -> Optional[str]:
        for sent_phone, code in reversed(self.sent):
            if sent_phone == phone:
                return code
        return None


@pytest.fixture(scope="session")
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
    if os.path.exists("./test_cureka.sqlite"):
        os.remove("./test_cureka.sqlite")


@pytest.fixture(autouse=True)
def clean_tables(client):
    with app.state.database.transaction() as db:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
    yield


@pytest.fixture()
def settings():
    return app.state.settings


@pytest.fixture()
def db(client):
    session = app.state.database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_sms():
    sms = FakeSMS()
    app.dependency_overrides[get_sms_service] = lambda: sms
    yield sms
    app.dependency_overrides.pop(get_sms_service, None)


@pytest.fixture()
def passwords():
    return app.state.staff_auth.passwords


@pytest.fixture()
def hospital(db):
    h = Hospital(id=new_id(), name="Apollo", slug="apollo")
    db.add(h)
    db.commit()
    db.refresh(h)
    return h


@pytest.fixture()
def create_staff(db, passwords, hospital):
    def _create(email: str, role: UserRole, password: str = "Correct-Horse-1", **fields) -> User:
        user = User(
            id=new_id(),
            email=email,
            role=role,
            full_name=fields.pop("full_name", "Staff Member"),
            hospital_id=hospital.id,
            password_hash=passwords.hash(password),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _create


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
