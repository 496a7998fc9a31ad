# tests/test_notification_processor.py
"""
Tests for the notification outbox, its delivery loop and email templates.

Run:
    pytest tests/test_notification_processor.py -v
"""
import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from config import Config
from models import Notification
from models.enums import NotificationStatus
from background.notification_processor import NotificationProcessor
from email_system import EmailService
from email_system.templates import render
from finance_system.services import notification_service
from finance_system.services.notification_service import NotificationService


class FakeEmailService:
    """Records sends; fails while `failing` is set; runs `on_send` during each send."""

    def __init__(self, failing: bool = False, on_send=None):
        self.failing = failing
        self.on_send = on_send
        self.sent = []

    async def send_email(self, to, template, variables):
        if self.on_send:
            self.on_send()
        if self.failing:
            return False
        self.sent.append((to, template, variables))
        return True


@pytest.fixture
def queued(session, make_user):
    """One pending deposit_approved notification, committed."""
    user = make_user(name="Alice")
    notification = NotificationService(session).enqueue(
        user.userID,
        notification_service.DEPOSIT_APPROVED,
        {"amount": Decimal("100"), "currency": "USD", "planName": "Basic", "endDate": date(2026, 3, 31)}
    )
    session.commit()
    return notification.notificationID


class TestOutbox:

    def test_enqueue_serializes_payload(self, session, make_user):
        user = make_user(name="Alice")

        notification = NotificationService(session).enqueue(
            user.userID, "deposit_rejected", {"amount": Decimal("50"), "reason": "Blurry"}
        )

        assert notification.status == NotificationStatus.PENDING.value
        assert notification.recipient == user.email
        assert notification.payload == {"amount": "50", "reason": "Blurry", "name": "Alice"}

    def test_enqueue_unknown_user(self, session):
        assert NotificationService(session).enqueue(999, "deposit_rejected", {}) is None


class TestProcessor:

    @pytest.mark.asyncio
    async def test_pending_sent(self, session, session_factory, queued):
        email = FakeEmailService()
        processor = NotificationProcessor(email_service=email, session_factory=session_factory)

        assert await processor.process_pending() == 1

        notification = session.get(Notification, queued)
        assert notification.status == NotificationStatus.SENT.value
        assert notification.attempts == 1
        assert notification.sentAt is not None
        assert email.sent[0][1] == "deposit_approved"

        session.commit()
        assert await processor.process_pending() == 0

    @pytest.mark.asyncio
    async def test_failed_after_max_attempts(self, session, session_factory, queued, monkeypatch):
        monkeypatch.setitem(Config._config, Config.NOTIFICATION_MAX_ATTEMPTS, 2)
        processor = NotificationProcessor(
            email_service=FakeEmailService(failing=True), session_factory=session_factory
        )

        await processor.process_pending()
        notification = session.get(Notification, queued)
        assert notification.status == NotificationStatus.PENDING.value
        assert notification.attempts == 1
        session.commit()

        await processor.process_pending()
        notification = session.get(Notification, queued)
        assert notification.status == NotificationStatus.FAILED.value
        assert notification.lastError == "Delivery failed"

    @pytest.mark.asyncio
    async def test_unconfigured_email_service(self, session, session_factory, queued, monkeypatch):
        monkeypatch.setitem(Config._config, Config.SMTP_HOST, None)
        email = EmailService()
        await email.initialize()
        processor = NotificationProcessor(email_service=email, session_factory=session_factory)

        assert email.isConfigured is False
        assert await processor.process_pending() == 0
        assert session.get(Notification, queued).status == NotificationStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_database_writable_during_send(self, session, session_factory, engine, queued):
        writes = []

        def write_from_other_connection():
            connection = sqlite3.connect(engine.url.database, timeout=0.5, isolation_level=None)
            try:
                connection.execute("BEGIN IMMEDIATE")
                connection.execute("ROLLBACK")
                writes.append("ok")
            except sqlite3.OperationalError as e:
                writes.append(str(e))
            finally:
                connection.close()

        processor = NotificationProcessor(
            email_service=FakeEmailService(on_send=write_from_other_connection),
            session_factory=session_factory
        )

        assert await processor.process_pending() == 1
        assert writes == ["ok"]

    @pytest.mark.asyncio
    async def test_outcome_not_recorded_when_settled_elsewhere(self, session, session_factory, queued):
        def settle_elsewhere():
            other = session_factory()
            try:
                notification = other.get(Notification, queued)
                notification.status = NotificationStatus.SENT.value
                notification.attempts = 1
                other.commit()
            finally:
                other.close()

        processor = NotificationProcessor(
            email_service=FakeEmailService(on_send=settle_elsewhere),
            session_factory=session_factory
        )

        await processor.process_pending()

        notification = session.get(Notification, queued)
        assert notification.status == NotificationStatus.SENT.value
        assert notification.attempts == 1


class TestTemplates:

    def test_render_formats_money(self):
        subject, text, html = render("deposit_approved", {
            "name": "Alice", "amount": "100", "currency": "USD",
            "planName": "Basic", "endDate": "2026-03-31",
        })

        assert subject == "Your deposit of 100.00 USD was approved"
        assert "Basic" in text
        assert "<b>100.00 USD</b>" in html

    def test_missing_variables_left_in_place(self):
        subject, text, _ = render("withdrawal_rejected", {"name": "Bob"})

        assert subject == "Your withdrawal of {amount} {currency} was rejected"
        assert "Reason: {reason}" in text

    def test_unknown_template(self):
        with pytest.raises(KeyError):
            render("welcome", {})
