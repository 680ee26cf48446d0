"""
Outgoing email over SMTP.

Used for password reset and email verification links, and for notifications
delivered on the email channel. Sending is skipped (and reported as a
failure) when no SMTP host is configured.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..core.config import settings

logger = logging.getLogger(__name__)

class EmailService:
    def __init__(self, host: Optional[str] = None, port: Optional[int] = None):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def send(self, to: str, subject: str, body: str, html: Optional[str] = None) -> bool:
        """Send a message; returns False instead of raising on SMTP errors."""
        if not self.is_configured:
            logger.debug("SMTP not configured, skipping email to %s", to)
            return False

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = settings.EMAIL_FROM
        message["To"] = to
        message.attach(MIMEText(body, "plain"))
        if html:
            message.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls(context=ssl.create_default_context())
                if settings.SMTP_USER and settings.SMTP_PASSWORD:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                server.sendmail(settings.EMAIL_FROM, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return False

        logger.info("Email sent to %s: %s", to, subject)
        return True

    def send_password_reset(self, to: str, token: str) -> bool:
        link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
        body = (
            "We received a request to reset your password.\n\n"
            f"Use the link below within one hour:\n{link}\n\n"
            "If you did not ask for this, you can ignore this email."
        )
        return self.send(to, f"{settings.APP_NAME}: password reset", body)

    def send_email_verification(self, to: str, token: str) -> bool:
        link = f"{settings.FRONTEND_URL}/verify-email?token={token}"
        body = (
            f"Welcome to {settings.APP_NAME}.\n\n"
            f"Confirm your email address within {settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours:\n"
            f"{link}"
        )
        return self.send(to, f"{settings.APP_NAME}: confirm your email", body)
