"""
Email Service

Transactional and campaign email through Resend.
"""

import asyncio
import logging
from typing import Optional

import resend
from fastapi import Depends

from app.config.settings import Settings, get_settings
from app.infrastructure.email.templates import render_admin_alert
from app.infrastructure.exceptions import ConfigurationError, EmailServiceError


logger = logging.getLogger(__name__)


class EmailService:
    """Thin wrapper over ``resend.Emails.send``, run off the event loop."""

    def __init__(self, settings: Settings):
        self._api_key = settings.resend_api_key
        self._from = settings.email_from
        self._admin_email = settings.admin_alert_email

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send one email.

        Returns:
            The Resend message id

        Raises:
            ConfigurationError: RESEND_API_KEY is not set
            EmailServiceError: Resend rejected the message
        """
        if not self._api_key:
            raise ConfigurationError("Email is not configured", missing_keys=["RESEND_API_KEY"])

        resend.api_key = self._api_key
        params = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            params["text"] = text
        if reply_to:
            params["reply_to"] = reply_to

        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise EmailServiceError(f"Failed to send email: {e}", recipient=to, original_error=e)

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent to {to}: {message_id}")
        return message_id

    async def notify_admin(
        self,
        subject: str,
        fields: dict[str, Optional[str]],
        body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> bool:
        """
        Best-effort internal alert.

        Alerts never fail the request that triggered them; failures are
        logged and reported as False.
        """
        if not self.is_configured:
            logger.warning(f"Skipping admin alert '{subject}': email not configured")
            return False
        try:
            await self.send(
                to=self._admin_email,
                subject=subject,
                html=render_admin_alert(subject, fields, body),
                reply_to=reply_to,
            )
            return True
        except EmailServiceError as e:
            logger.warning(f"Admin alert '{subject}' not sent: {e.message}")
            return False


def get_email_service(settings: Settings = Depends(get_settings)) -> EmailService:
    """Per-request EmailService built from settings."""
    return EmailService(settings)
