import asyncio
import logging
from typing import Optional

import aiohttp

from app.auth.validators import mask_phone
from app.config import Settings
from app.errors import SMSDeliveryFailed

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class SMSService:
    """Twilio Messages API client over a shared aiohttp session."""

    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self.session = session

    @classmethod
    async def open(cls, settings: Settings) -> "SMSService":
        timeout = aiohttp.ClientTimeout(total=10)
        return cls(settings, aiohttp.ClientSession(timeout=timeout))

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()

    def otp_message(self, code: str) -> str:
        return (
            f"Your Cureka verification code is: {code}. "
            f"This code will expire in {self.settings.OTP_EXPIRY_MINUTES} minutes."
        )

    async def send_otp(self, phone: str, code: str) -> str:
        """
        Send the code to ``phone`` and return the provider message id.

        Raises:
            SMSDeliveryFailed: provider not configured, unreachable, or it
                rejected the message
        """
        if not self.settings.twilio_configured or self.session is None:
            logger.error("Twilio credentials not configured; cannot send SMS to %s", mask_phone(phone))
            raise SMSDeliveryFailed()

        url = TWILIO_API_URL.format(sid=self.settings.TWILIO_ACCOUNT_SID)
        data = {
            "To": phone,
            "From": self.settings.TWILIO_PHONE_NUMBER,
            "Body": self.otp_message(code),
        }
        auth = aiohttp.BasicAuth(self.settings.TWILIO_ACCOUNT_SID, self.settings.TWILIO_AUTH_TOKEN)
        try:
            async with self.session.post(url, data=data, auth=auth) as response:
                payload = await response.json(content_type=None)
                if response.status >= 400:
                    logger.error(
                        "Twilio rejected SMS to %s: status=%s code=%s message=%s",
                        mask_phone(phone), response.status, payload.get("code"), payload.get("message"),
                    )
                    raise SMSDeliveryFailed()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Error sending SMS to %s: %s", mask_phone(phone), e)
            raise SMSDeliveryFailed() from e

        logger.info("OTP SMS sent to %s: sid=%s", mask_phone(phone), payload.get("sid"))
        return payload.get("sid", "")
