"""SMS delivery through the Twilio REST API."""

from __future__ import annotations

import logging

import httpx

from guardian import config
from guardian.services.notifier import CodePurpose, code_message

logger = logging.getLogger(__name__)


class SmsNotifier:
    """HTTP client for Twilio's Messages endpoint.

    Only the one call Guardian needs; no Twilio SDK.
    """

    def __init__(self) -> None:
        self._base_url = config.settings.TWILIO_API_URL
        self._account_sid = config.settings.TWILIO_ACCOUNT_SID
        self._auth_token = config.settings.TWILIO_AUTH_TOKEN
        self._from_number = config.settings.TWILIO_FROM_NUMBER

    def configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    async def send_message(self, recipient: str, body: str) -> dict:
        """
        Send an SMS.

        Args:
            recipient: Phone number in E.164 format (e.g. "+15551234567")
            body: Message text

        Returns:
            Response dict from Twilio

        Raises:
            httpx.HTTPError: If Twilio is unreachable or rejects the message
        """
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                f"{self._base_url}/Accounts/{self._account_sid}/Messages.json",
                data={"To": recipient, "From": self._from_number, "Body": body},
                auth=(self._account_sid, self._auth_token),
            )
            response.raise_for_status()
            return response.json()

    async def send_code(self, recipient: str, code: str, purpose: CodePurpose) -> bool:
        if not self.configured():
            if config.settings.is_production:
                logger.error("sms: Twilio not configured, %s code for %s not sent", purpose, recipient)
            else:
                logger.info("sms: not configured, %s code for %s is %s", purpose, recipient, code)
            return False

        body = code_message(code, purpose, config.settings.VERIFICATION_CODE_TTL_MINUTES)
        try:
            await self.send_message(recipient, body)
        except httpx.HTTPError as e:
            logger.error("sms: delivery to %s failed: %s", recipient, e)
            return False
        return True


sms_notifier = SmsNotifier()
