"""
Heimursaga API — Email Service
================================

What:  Sends transactional email over SMTP.
How:   Blocking `smtplib` work runs in `asyncio.to_thread` so the event loop
       is never held. Without `SMTP_HOST` messages are logged and skipped.
       SMTP failures are logged and swallowed.
Who:   The SEND_EMAIL listener; services emit the event rather than calling
       `send()` directly.
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Any, Dict, Optional

from saga.config import settings
from saga.exceptions import ValidationError
from saga.services import email_templates

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30


class EmailService:
    async def send(
        self,
        to: str,
        template: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        subject: Optional[str] = None,
        text: Optional[str] = None,
        html: Optional[str] = None,
    ) -> bool:
        """
        Render (if `template` is given) and deliver one message.

        Returns True when the message was handed to the SMTP server.

        Raises:
            ValidationError: unknown template or nothing to send
        """
        if template:
            rendered = email_templates.render(template, variables)
            if rendered is None:
                raise ValidationError(f"unknown email template: {template}", field="template")
            subject = subject or rendered.subject
            text = text or rendered.text
            html = html or rendered.html

        if not to or not subject or not (text or html):
            raise ValidationError("email requires a recipient, a subject and a body")

        if not settings.smtp_host:
            logger.info("SMTP not configured; skipping email '%s' to %s", subject, to)
            return False

        message = self._build_message(to, subject, text, html)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email '%s' to %s: %s", subject, to, e)
            return False

        logger.info("Email '%s' sent to %s", subject, to)
        return True

    async def handle_send_email(self, data: Dict[str, Any]) -> None:
        """SEND_EMAIL listener."""
        await self.send(
            to=data.get("to", ""),
            template=data.get("template"),
            variables=data.get("variables"),
            subject=data.get("subject"),
            text=data.get("text"),
            html=data.get("html"),
        )

    @staticmethod
    def _build_message(to: str, subject: str, text: Optional[str], html: Optional[str]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = settings.smtp_email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or "")
        if html:
            message.add_alternative(html, subtype="html")
        return message

    @staticmethod
    def _deliver(message: EmailMessage) -> None:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT) as server:
            server.ehlo()
            if settings.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if settings.smtp_user and settings.smtp_password:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(message)


# Singleton instance
email_service = EmailService()
