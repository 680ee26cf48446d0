"""
Twilio SMS delivery for notifications sent on the sms channel.
"""

import logging
from typing import Optional, Tuple

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

class SmsService:
    def __init__(self, client: Optional[httpx.Client] = None):
        self.client = client

    @property
    def is_configured(self) -> bool:
        return bool(
            settings.TWILIO_ACCOUNT_SID
            and settings.TWILIO_AUTH_TOKEN
            and settings.TWILIO_FROM_NUMBER
        )

    def send(self, to_phone: Optional[str], body: str) -> Tuple[bool, Optional[str]]:
        """
        Send an SMS.

        Returns:
            Tuple of (success, error message)
        """
        if not to_phone:
            return False, "No phone number provided"
        if not to_phone.startswith("+"):
            logger.warning("Phone number not in E.164 format: %s", to_phone)
            return False, "Phone number must be in E.164 format (e.g., +1234567890)"
        if not self.is_configured:
            logger.debug("Twilio not configured, skipping SMS to %s", to_phone)
            return False, "SMS not configured"

        sid = settings.TWILIO_ACCOUNT_SID
        data = {"To": to_phone, "From": settings.TWILIO_FROM_NUMBER, "Body": body[:1600]}
        client = self.client or httpx.Client(timeout=10.0)
        try:
            response = client.post(
                TWILIO_API_URL.format(sid=sid),
                auth=(sid, settings.TWILIO_AUTH_TOKEN),
                data=data,
            )
        except httpx.HTTPError as e:
            logger.error("Twilio request failed for %s: %s", to_phone, e)
            return False, str(e)
        finally:
            if self.client is None:
                client.close()

        if response.status_code in (200, 201):
            logger.info("SMS sent to %s (sid=%s)", to_phone, response.json().get("sid"))
            return True, None

        error = response.text[:200]
        logger.error("Twilio returned %s for %s: %s", response.status_code, to_phone, error)
        return False, error
