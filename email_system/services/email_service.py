# investo/email_system/services/email_service.py
"""
Email service for notification emails.
"""
import logging
from typing import Dict, Any, Optional

from config import Config
from email_system.providers import SMTPProvider
from email_system.templates import TEMPLATES, render

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending templated emails.

    Usage:
        email_service = EmailService()
        await email_service.initialize()
        success = await email_service.send_email(
            to='user@example.com',
            template='deposit_approved',
            variables={'name': 'Alice', 'amount': '100.00'}
        )
    """

    def __init__(self, provider: Optional[SMTPProvider] = None):
        """
        Initialize email service.

        Args:
            provider: Ready provider (built from Config on initialize() if None)
        """
        self.provider = provider
        self._initialized = provider is not None

    async def initialize(self) -> None:
        """
        Build the SMTP provider from configuration.
        Called during startup.
        """
        if self._initialized:
            logger.warning("EmailService already initialized")
            return

        logger.info("Initializing EmailService...")

        smtp_host = Config.get(Config.SMTP_HOST)
        smtp_username = Config.get(Config.SMTP_USERNAME)
        smtp_password = Config.get(Config.SMTP_PASSWORD)

        logger.info(
            f"SMTP config check: host={smtp_host}, username={smtp_username}, "
            f"password={'***' if smtp_password else 'EMPTY'}"
        )

        if smtp_host:
            smtp_port = Config.get(Config.SMTP_PORT, 587)
            self.provider = SMTPProvider(
                host=smtp_host,
                port=smtp_port,
                username=smtp_username,
                password=smtp_password,
                from_email=Config.get(Config.SMTP_FROM_EMAIL, "noreply@investo.local"),
                start_tls=Config.get(Config.SMTP_USE_TLS, True)
            )
            logger.info(f"✓ SMTP provider added: {smtp_host}:{smtp_port}")
        else:
            logger.warning("SMTP provider not configured (missing host), emails will not be sent")

        self._initialized = True

    @property
    def isConfigured(self) -> bool:
        return self.provider is not None

    async def send_email(self, to: str, template: str, variables: Dict[str, Any]) -> bool:
        """
        Render a built-in template and send it.

        Args:
            to: Recipient email address
            template: Template name (see email_system.templates)
            variables: Variables for template substitution

        Returns:
            True if email sent successfully
        """
        if not self.provider:
            logger.error("No email provider configured")
            return False

        if not to:
            logger.error("Recipient email not provided")
            return False

        if template not in TEMPLATES:
            logger.error(f"Unknown email template: {template}")
            return False

        subject, text_body, html_body = render(template, variables)

        return await self.provider.send_email(
            to=to,
            subject=subject,
            html_body=html_body,
            text_body=text_body
        )

    def get_config_info(self) -> Dict[str, Any]:
        """Email configuration summary for status output."""
        return {
            'smtp': {
                'configured': self.isConfigured,
                'host': Config.get(Config.SMTP_HOST, 'Not configured'),
                'port': Config.get(Config.SMTP_PORT, 587),
            },
            'templates': sorted(TEMPLATES),
        }
