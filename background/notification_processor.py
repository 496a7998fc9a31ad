# investo/background/notification_processor.py
"""
Notification processor service.
Delivers pending outbox notifications by email.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from models import Notification
from models.enums import NotificationStatus
from core.db import get_db_session_ctx
from config import Config
from email_system import EmailService
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class NotificationProcessor:
    """
    Service for delivering notifications.

    Features:
    - Polls the outbox for pending notifications
    - Retry logic for failed deliveries (NOTIFICATION_MAX_ATTEMPTS)
    - Delivery problems never touch financial state
    """

    def __init__(
            self,
            polling_interval: Optional[int] = None,
            email_service: Optional[EmailService] = None,
            session_factory=None,
            batch_size: int = 50
    ):
        """
        Initialize notification processor.

        Args:
            polling_interval: Seconds between outbox checks (Config default if None)
            email_service: Email service (created and initialized on first use if None)
            session_factory: sessionmaker (default engine if None)
            batch_size: Notifications per pass
        """
        self.polling_interval = polling_interval or Config.get(Config.NOTIFICATION_POLL_INTERVAL, 10)
        self.max_attempts = Config.get(Config.NOTIFICATION_MAX_ATTEMPTS, 3)
        self.email_service = email_service
        self.session_factory = session_factory
        self.batch_size = batch_size
        self._running = False

    async def _get_email_service(self) -> EmailService:
        if self.email_service is None:
            self.email_service = EmailService()
            await self.email_service.initialize()
        return self.email_service

    def _pending_ids(self) -> List[int]:
        with get_db_session_ctx(self.session_factory) as session:
            rows = (
                session.query(Notification.notificationID)
                .filter(
                    Notification.status == NotificationStatus.PENDING.value,
                    Notification.attempts < self.max_attempts
                )
                .order_by(Notification.notificationID)
                .limit(self.batch_size)
                .all()
            )
            return [row[0] for row in rows]

    def _load_pending(self, notificationId: int) -> Optional[Dict[str, Any]]:
        """Read what the send needs in a short session, or None if not pending."""
        with get_db_session_ctx(self.session_factory) as session:
            notification = session.get(Notification, notificationId)
            if not notification or notification.status != NotificationStatus.PENDING.value:
                return None
            return {
                "userID": notification.userID,
                "to": notification.recipient,
                "template": notification.template,
                "variables": dict(notification.payload or {}),
            }

    def _record_outcome(self, notificationId: int, success: bool, error: Optional[str]) -> bool:
        """
        Record one delivery attempt in a short session.

        Only a still pending row is updated; returns False when another
        processor already settled it.
        """
        with get_db_session_ctx(self.session_factory) as session:
            notification = session.get(Notification, notificationId)
            if not notification or notification.status != NotificationStatus.PENDING.value:
                logger.warning(f"Notification {notificationId} settled elsewhere, outcome dropped")
                return False

            notification.attempts = (notification.attempts or 0) + 1
            if success:
                notification.status = NotificationStatus.SENT.value
                notification.sentAt = timeMachine.now
                notification.lastError = None
                logger.info(f"Notification {notificationId} sent to user {notification.userID}")
            else:
                notification.lastError = error
                if notification.attempts >= self.max_attempts:
                    notification.status = NotificationStatus.FAILED.value
                    logger.warning(
                        f"Notification {notificationId} failed after {notification.attempts} attempts: {error}"
                    )
            return True

    async def send_notification(self, notificationId: int) -> bool:
        """
        Send a single notification and record the outcome.

        No database session is open while the email is sent, so SMTP
        latency never holds the write lock.

        Returns:
            True if sent successfully, False otherwise
        """
        email_service = await self._get_email_service()

        message = self._load_pending(notificationId)
        if message is None:
            return False

        try:
            success = await email_service.send_email(
                to=message["to"],
                template=message["template"],
                variables=message["variables"]
            )
            error = None if success else "Delivery failed"
        except Exception as e:
            logger.error(f"Error sending notification {notificationId}: {e}", exc_info=True)
            success = False
            error = str(e)[:500]

        self._record_outcome(notificationId, success, error)
        return success

    async def process_pending(self) -> int:
        """
        One pass over pending notifications.

        Returns:
            Number of notifications sent
        """
        sent = 0
        for notificationId in self._pending_ids():
            if await self.send_notification(notificationId):
                sent += 1
        return sent

    async def run(self) -> None:
        """
        Main processing loop.
        Runs continuously sending pending notifications.
        """
        logger.info("Starting notification processor")
        self._running = True

        try:
            while self._running:
                try:
                    await self.process_pending()
                except Exception as e:
                    logger.error(f"Error in notification processor: {e}", exc_info=True)

                await asyncio.sleep(self.polling_interval)
        finally:
            self._running = False
            logger.info("Notification processor stopped")

    async def stop(self):
        """Stop the processor gracefully."""
        self._running = False
        await asyncio.sleep(0)
