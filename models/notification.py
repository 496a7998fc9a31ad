# investo/models/notification.py
"""
Notification model - outbox of user notifications.

Rows are written in the same transaction as the financial change that
triggers them and delivered later by background/notification_processor.py.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from models.base import Base, _get_current_time


class Notification(Base):
    __tablename__ = 'notifications'

    notificationID = Column(Integer, primary_key=True, autoincrement=True)

    userID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    recipient = Column(String, nullable=False)  # email address

    template = Column(String, nullable=False)  # deposit_approved, withdrawal_rejected...
    payload = Column(JSON, nullable=True)

    status = Column(String(20), nullable=False, default='pending', index=True)  # pending, sent, failed
    attempts = Column(Integer, nullable=False, default=0)
    lastError = Column(String, nullable=True)

    createdAt = Column(DateTime, default=_get_current_time)
    sentAt = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Notification(notificationID={self.notificationID}, template={self.template}, status={self.status})>"
