import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from app.auth.otp import OTPManager
from app.errors import APIError, ExpiredOTP, InvalidOTP, OTPAttemptsExceeded
from app.models.otp import OneTimeCode
from main import app

PHONE = "+919876543210"


@pytest.fixture()
def otp(settings):
    return OTPManager(settings)


def codes_for(db, number="919876543210"):
    db.expire_all()
    return db.query(OneTimeCode).filter(OneTimeCode.number == number).all()


def other_code(code: str) -> str:
    return "1000" if code != "1000" else "1001"


def test_issue_stores_code_without_plus(db, otp):
    code = otp.issue(db, PHONE)
    rows = codes_for(db)
    assert len(rows) == 1
    assert rows[0].code == int(code)
    assert rows[0].attempts == 0


def test_new_code_supersedes_old_one(db, otp):
    first = otp.issue(db, PHONE)
    second = otp.issue(db, PHONE)
    assert len(codes_for(db)) == 1
    if first != second:
        with pytest.raises(InvalidOTP):
            otp.verify(db, PHONE, first)
    otp.verify(db, PHONE, second)


def test_code_is_single_use(db, otp):
    code = otp.issue(db, PHONE)
    otp.verify(db, PHONE, code)
    assert codes_for(db) == []
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, code)


def test_no_code_is_invalid(db, otp):
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, "1234")


def test_expired_code_is_removed(db, otp):
    issued_at = datetime.utcnow() - timedelta(minutes=10)
    code = otp.issue(db, PHONE, now=issued_at)
    with pytest.raises(ExpiredOTP):
        otp.verify(db, PHONE, code)
    assert codes_for(db) == []
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, code)


def test_code_valid_right_up_to_expiry(db, otp):
    issued_at = datetime.utcnow()
    code = otp.issue(db, PHONE, now=issued_at)
    otp.verify(db, PHONE, code, now=issued_at + timedelta(minutes=5))


def test_wrong_guess_keeps_code_and_counts(db, otp):
    code = otp.issue(db, PHONE)
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, other_code(code))
    rows = codes_for(db)
    assert len(rows) == 1
    assert rows[0].attempts == 1
    otp.verify(db, PHONE, code)


def test_comparison_is_numeric(db, otp):
    db.add(OneTimeCode(number="919876543210", code=42, created_at=datetime.utcnow()))
    db.commit()
    otp.verify(db, PHONE, "0042")


def test_too_many_wrong_guesses_discard_code(db, otp, settings):
    code = otp.issue(db, PHONE)
    wrong = other_code(code)
    for _ in range(settings.MAX_OTP_ATTEMPTS - 1):
        with pytest.raises(InvalidOTP):
            otp.verify(db, PHONE, wrong)
    with pytest.raises(OTPAttemptsExceeded):
        otp.verify(db, PHONE, wrong)
    assert codes_for(db) == []
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, code)


def test_parallel_wrong_guesses_still_discard_code(db, otp, settings, monkeypatch):
    code = otp.issue(db, PHONE)
    wrong = other_code(code)
    workers = settings.MAX_OTP_ATTEMPTS + 3
    # Every guess has read the code before any of them is counted
    barrier = threading.Barrier(workers)
    real_latest = otp._latest

    def latest_together(session, number):
        record = real_latest(session, number)
        barrier.wait(timeout=10)
        return record

    monkeypatch.setattr(otp, "_latest", latest_together)

    def guess(_):
        session = app.state.database.session()
        try:
            otp.verify(session, PHONE, wrong)
        except APIError as exc:
            return type(exc)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(guess, range(workers)))
    monkeypatch.undo()

    assert results.count(OTPAttemptsExceeded) == 1
    assert set(results) == {InvalidOTP, OTPAttemptsExceeded}
    assert codes_for(db) == []
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, code)


def test_code_consumed_by_another_request_is_rejected(db, otp, monkeypatch):
    code = otp.issue(db, PHONE)
    real_consume = otp._consume

    def consumed_elsewhere(session, code_id):
        # The other request deletes the row first
        real_consume(session, code_id)
        return real_consume(session, code_id)

    monkeypatch.setattr(otp, "_consume", consumed_elsewhere)
    with pytest.raises(InvalidOTP):
        otp.verify(db, PHONE, code)


def test_purge_expired_only_removes_old_codes(db, otp):
    now = datetime.utcnow()
    otp.issue(db, "+919000000001", now=now - timedelta(minutes=30))
    otp.issue(db, "+919000000002", now=now - timedelta(minutes=6))
    otp.issue(db, PHONE, now=now - timedelta(minutes=1))

    assert otp.purge_expired(db, now=now) == 2
    db.expire_all()
    remaining = [row.number for row in db.query(OneTimeCode).all()]
    assert remaining == ["919876543210"]
