"""Email service using Resend for verification and reset codes."""

from __future__ import annotations

import logging

import resend

from guardian import config
from guardian.services.notifier import CodePurpose, code_message

logger = logging.getLogger(__name__)

_SUBJECTS: dict[str, str] = {
    "verification": "Verify your Guardian account",
    "password_reset": "Reset your Guardian password",
}


class EmailNotifier:
    """Sends codes by email through Resend."""

    def __init__(self) -> None:
        self._api_key = config.settings.RESEND_API_KEY
        self._from = config.settings.EMAIL_FROM

    def configured(self) -> bool:
        return bool(self._api_key)

    async def send_code(self, recipient: str, code: str, purpose: CodePurpose) -> bool:
        """
        Email a one-time code.

        Args:
            recipient: Recipient email address
            code: The code to deliver
            purpose: Which flow the code belongs to

        Returns:
            True if Resend accepted the message, False otherwise
        """
        ttl = config.settings.VERIFICATION_CODE_TTL_MINUTES
        text_content = code_message(code, purpose, ttl)

        if not self.configured():
            if config.settings.is_production:
                logger.error("email: RESEND_API_KEY not set, %s code for %s not sent", purpose, recipient)
            else:
                logger.info("email: not configured, %s code for %s is %s", purpose, recipient, code)
            return False

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; color: #333;">
            <h2>{_SUBJECTS[purpose]}</h2>
            <p>Your code is:</p>
            <p style="font-size: 28px; font-weight: 600; letter-spacing: 4px;">{code}</p>
            <p>It expires in {ttl} minutes.</p>
            <p style="color: #666; font-size: 14px;">If you didn't request this email, you can safely ignore it.</p>
        </body>
        </html>
        """

        resend.api_key = self._api_key
        params = {
            "from": self._from,
            "to": [recipient],
            "subject": _SUBJECTS[purpose],
            "html": html_content,
            "text": text_content,
        }

        try:
            resend.Emails.send(params)
        except Exception as e:
            logger.error("email: delivery to %s failed: %s", recipient, e)
            return False
        return True


email_notifier = EmailNotifier()
