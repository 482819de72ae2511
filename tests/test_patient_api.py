from jose import jwt

from app.models.otp import OneTimeCode
from app.models.user import User, UserRole
from conftest import auth_header

PHONE = "+919876543210"


def request_code(client, fake_sms, phone=PHONE):
    response = client.post("/auth/patient/otp/request", json={"phone_number": phone})
    assert response.status_code == 200, response.text
    return fake_sms.last_code(phone)


def test_request_sends_code_by_sms(client, fake_sms):
    response = client.post("/auth/patient/otp/request", json={"phone_number": PHONE})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(fake_sms.sent) == 1
    phone, code = fake_sms.sent[0]
    assert phone == PHONE
    assert len(code) == 4 and code.isdigit()


def test_request_rejects_bad_phone(client, fake_sms):
    for bad in ("9876543210", "+449876543210", "+91987654321"):
        response = client.post("/auth/patient/otp/request", json={"phone_number": bad})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "VALIDATION_ERROR"
    assert fake_sms.sent == []


def test_request_reports_sms_failure(client, fake_sms):
    fake_sms.fail = True
    response = client.post("/auth/patient/otp/request", json={"phone_number": PHONE})
    assert response.status_code == 502
    assert response.json()["code"] == "SMS_DELIVERY_FAILED"


def test_verify_creates_patient_and_issues_tokens(client, fake_sms, db, settings):
    code = request_code(client, fake_sms)

    response = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["user"]["phone_number"] == PHONE
    assert data["user"]["full_name"] is None
    assert data["token_type"] == "Bearer"
    assert data["expires_in"] == 86400

    user = db.query(User).filter(User.phone == PHONE).one()
    assert user.role == UserRole.PATIENT
    assert user.last_login is not None
    assert data["user"]["user_id"] == user.id

    claims = jwt.decode(data["access_token"], settings.JWT_SECRET, algorithms=["HS256"])
    assert claims["sub"] == user.id
    assert claims["role"] == "PATIENT"


def test_same_code_cannot_be_used_twice(client, fake_sms):
    code = request_code(client, fake_sms)
    first = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    assert first.status_code == 200
    second = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    assert second.status_code == 400
    assert second.json()["code"] == "INVALID_OTP"


def test_known_number_reuses_account(client, fake_sms, db):
    code = request_code(client, fake_sms)
    first = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    code = request_code(client, fake_sms)
    second = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    assert first.json()["data"]["user"]["user_id"] == second.json()["data"]["user"]["user_id"]
    assert db.query(User).filter(User.phone == PHONE).count() == 1


def test_expired_code_reported(client, fake_sms, db):
    from datetime import datetime, timedelta

    code = request_code(client, fake_sms)
    row = db.query(OneTimeCode).one()
    row.created_at = datetime.utcnow() - timedelta(minutes=6)
    db.commit()

    response = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    assert response.status_code == 400
    assert response.json()["code"] == "EXPIRED_OTP"
    again = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code})
    assert again.json()["code"] == "INVALID_OTP"


def test_verify_rejects_malformed_code(client, fake_sms):
    response = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": "12ab"})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_patient_refresh_and_me(client, fake_sms, settings):
    code = request_code(client, fake_sms)
    login = client.post("/auth/patient/otp/verify", json={"phone_number": PHONE, "otp_code": code}).json()["data"]

    refreshed = client.post("/auth/patient/refresh", json={"refresh_token": login["refresh_token"]})
    assert refreshed.status_code == 200
    new_access = refreshed.json()["data"]["access_token"]
    claims = jwt.decode(new_access, settings.JWT_SECRET, algorithms=["HS256"])
    assert claims["sub"] == login["user"]["user_id"]
    assert claims["role"] == "PATIENT"

    me = client.get("/auth/me", headers=auth_header(new_access))
    assert me.status_code == 200
    assert me.json()["phone"] == PHONE
    assert me.json()["role"] == "PATIENT"


def test_me_requires_token(client):
    assert client.get("/auth/me").json()["code"] == "TOKEN_MISSING"
    response = client.get("/auth/me", headers=auth_header("garbage"))
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"
