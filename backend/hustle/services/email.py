# backend/hustle/services/email.py
"""
Email Service for the Hustle Village backend.

Sends transactional email through the Resend API. Only the outbox
dispatcher calls it, so a failed send never fails a booking or payment
request.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService

logger = logging.getLogger(__name__)


class EmailService(BaseService):
    """Service for sending emails using the Resend API."""

    def __init__(self, db: Session, api_key: Optional[str] = None, from_email: Optional[str] = None):
        super().__init__(db)

        key = api_key or settings.resend_api_key.get_secret_value()
        if not key:
            raise ServiceException("Resend API key not configured")

        resend.api_key = key
        self.from_email = from_email or settings.from_email

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.resend_api_key.get_secret_value())

    def _html_to_text(self, html_content: str) -> str:
        """Plain text version for better deliverability."""
        text = re.sub(r"<[^>]+>", "", html_content)
        return re.sub(r"\s+", " ", text).strip()

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a single email.

        Raises:
            ServiceException: If Resend rejects the message or cannot be reached
        """
        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content or self._html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {str(e)}")
            self.log_operation("email_failed", to_email=to_email, subject=subject, error=str(e))
            raise ServiceException(f"Email sending failed: {str(e)}")

        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return dict(response) if response else {}
