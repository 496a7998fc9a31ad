# finance_system/services/notification_service.py
"""
Notification outbox writer.

Financial operations call enqueue() inside their own transaction; delivery
happens later in background/notification_processor.py. Enqueue failures are
logged and swallowed: a notification never blocks or undoes money movement.
"""
import logging
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session

from models.user import User
from models.notification import Notification
from models.enums import NotificationStatus
from finance_system.utils.money import to_json_safe
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

# Decision notifications
DEPOSIT_APPROVED = "deposit_approved"
DEPOSIT_REJECTED = "deposit_rejected"
WITHDRAWAL_APPROVED = "withdrawal_approved"
WITHDRAWAL_REJECTED = "withdrawal_rejected"
INVESTMENT_COMPLETED = "investment_completed"


class NotificationService:
    """Queue user notifications in the outbox table."""

    def __init__(self, session: Session):
        self.session = session

    def enqueue(
            self,
            userId: int,
            template: str,
            payload: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Add a pending notification for the user's email.

        Returns:
            Notification or None if it could not be queued
        """
        try:
            user = self.session.get(User, userId)
            if not user or not user.email:
                logger.warning(f"Cannot notify user {userId}: no email on file")
                return None

            notification = Notification(
                userID=userId,
                recipient=user.email,
                template=template,
                payload=to_json_safe(dict(payload or {}, name=user.name or user.email)),
                status=NotificationStatus.PENDING.value,
                attempts=0,
                createdAt=timeMachine.now
            )
            self.session.add(notification)
            logger.debug(f"Notification queued: {template} → user {userId}")
            return notification

        except Exception as e:
            logger.error(f"Failed to queue notification {template} for user {userId}: {e}")
            return None
