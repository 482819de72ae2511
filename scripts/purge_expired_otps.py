#!/usr/bin/env python3
"""
Delete every one-time code older than OTP_EXPIRY_MINUTES.

The API also runs this sweep periodically (OTP_SWEEP_INTERVAL_SECONDS); use
this script from cron when the periodic sweep is disabled.

Usage:
  python scripts/purge_expired_otps.py
  DATABASE_URL=postgresql://... python scripts/purge_expired_otps.py
"""
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.auth.otp import OTPManager  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.database import Database  # noqa: E402


def main() -> int:
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL)
    database = Database(settings.DATABASE_URL)
    db = database.session()
    try:
        removed = OTPManager(settings).purge_expired(db)
    finally:
        db.close()
        database.dispose()
    print(f"Removed {removed} expired code(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
