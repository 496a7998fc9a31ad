# investo/email_system/providers/smtp_provider.py
"""
SMTP email provider using aiosmtplib.
"""
import logging
from typing import Optional

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

logger = logging.getLogger(__name__)


class SMTPProvider:
    """SMTP provider for notification emails."""

    def __init__(
            self,
            host: str,
            port: int,
            username: Optional[str],
            password: Optional[str],
            from_email: str,
            start_tls: bool = True,
            timeout: int = 30
    ):
        """
        Initialize SMTP provider.

        Args:
            host: SMTP server host
            port: SMTP server port
            username: SMTP username (None for unauthenticated relays)
            password: SMTP password
            from_email: Sender address
            start_tls: Upgrade the connection with STARTTLS
            timeout: Connection timeout in seconds
        """
        self.smtp_host = host
        self.smtp_port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.start_tls = start_tls
        self.timeout = timeout

        logger.info(f"SMTPProvider initialized: {host}:{port}")

    def _build_message(
            self,
            to: str,
            subject: str,
            html_body: str,
            text_body: Optional[str] = None
    ) -> MIMEMultipart:
        message = MIMEMultipart('alternative')
        message['From'] = f"Investo <{self.from_email}>"
        message['To'] = to
        message['Subject'] = subject

        if text_body:
            message.attach(MIMEText(text_body, 'plain', 'utf-8'))
        message.attach(MIMEText(html_body, 'html', 'utf-8'))
        return message

    async def send_email(
            self,
            to: str,
            subject: str,
            html_body: str,
            text_body: Optional[str] = None
    ) -> bool:
        """
        Send email via SMTP.

        Returns:
            True if sent successfully
        """
        try:
            logger.info(f"Sending email via SMTP to {to}")

            await aiosmtplib.send(
                self._build_message(to, subject, html_body, text_body),
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.username,
                password=self.password,
                start_tls=self.start_tls,
                timeout=self.timeout
            )

            logger.info(f"✅ Email sent successfully via SMTP to {to}")
            return True

        except aiosmtplib.SMTPException as e:
            logger.error(f"SMTP error while sending email to {to}: {e}")
            return False
        except OSError as e:
            logger.error(f"Connection error while sending email to {to}: {e}")
            return False

    async def test_connection(self) -> bool:
        """
        Connect, upgrade and authenticate without sending anything.

        Returns:
            True if connection successful
        """
        client = aiosmtplib.SMTP(
            hostname=self.smtp_host,
            port=self.smtp_port,
            start_tls=self.start_tls,
            timeout=10
        )
        try:
            logger.info(f"Testing SMTP connection to {self.smtp_host}:{self.smtp_port}")
            await client.connect()
            if self.username and self.password:
                await client.login(self.username, self.password)
            await client.quit()
            logger.info("SMTP connection test successful")
            return True

        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP connection test failed: {e}")
            return False
