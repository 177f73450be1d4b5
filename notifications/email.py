"""
Outbound email over SMTP.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from config import Settings
from utils.exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)


class EmailSender:
    """Sends HTML email through an authenticated STARTTLS SMTP server."""

    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.sender_name = settings.email_sender_name

    def _build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.sender_name, self.username))
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _send_sync(self, to: str, subject: str, html_body: str) -> None:
        msg = self._build_message(to, subject, html_body)
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.username, [to], msg.as_string())

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        """
        Send one email.

        Returns:
            True if the SMTP server accepted the message, False if there
            is no recipient or SMTP is not configured

        Raises:
            DependencyUnavailableError: If the SMTP server rejected or
                could not be reached
        """
        if not to:
            logger.warning(f"Skipping email '{subject}': no recipient")
            return False
        if not self.username or not self.password:
            logger.warning(f"Skipping email '{subject}' to {to}: SMTP is not configured")
            return False

        try:
            await asyncio.to_thread(self._send_sync, to, subject, html_body)
        except (smtplib.SMTPException, OSError) as e:
            raise DependencyUnavailableError(
                f"SMTP delivery of '{subject}' to {to} failed: {e}"
            ) from e

        logger.info(f"Email '{subject}' sent to {to}")
        return True
