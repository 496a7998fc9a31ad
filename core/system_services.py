# investo/core/system_services.py
"""
System services management for Investo.
Handles service lifecycle and graceful shutdown.
"""
import asyncio
import logging
import signal
from typing import List, Optional

from background.daily_scheduler import DailyScheduler
from background.notification_processor import NotificationProcessor
from email_system import EmailService

logger = logging.getLogger(__name__)


class ServiceManager:
    """
    Manager for background services and tasks.
    Handles service lifecycle and graceful shutdown.
    """

    def __init__(self, email_service: Optional[EmailService] = None, session_factory=None):
        """
        Initialize service manager.

        Args:
            email_service: Initialized email service for notification delivery
            session_factory: sessionmaker shared by background services (default engine if None)
        """
        self.email_service = email_service
        self.session_factory = session_factory
        self.services: List[asyncio.Task] = []

        # Service instances for graceful shutdown
        self.notification_processor: Optional[NotificationProcessor] = None
        self.daily_scheduler: Optional[DailyScheduler] = None

        self._shutdown_event = asyncio.Event()

    async def start_services(self) -> None:
        """
        Start all background services.

        Services to start:
        - Notification processor (pending outbox emails)
        - Daily scheduler (midnight cycle, clock sync)
        """
        logger.info("=" * 60)
        logger.info("STARTING BACKGROUND SERVICES")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════
        # SERVICE 1: Notification Processor
        # ═══════════════════════════════════════════════════════════════
        self.notification_processor = NotificationProcessor(
            email_service=self.email_service,
            session_factory=self.session_factory
        )
        task = asyncio.create_task(
            self.notification_processor.run(),
            name="notification_processor"
        )
        self.services.append(task)
        logger.info(
            f"✓ Notification processor started "
            f"({self.notification_processor.polling_interval}s interval)"
        )

        # ═══════════════════════════════════════════════════════════════
        # SERVICE 2: Daily Scheduler
        # ═══════════════════════════════════════════════════════════════
        self.daily_scheduler = DailyScheduler(self.session_factory)
        await self.daily_scheduler.start()

        logger.info("✓ Daily Scheduler started (APScheduler)")
        logger.info("  → Daily Cycle: local midnight of the trusted clock")
        logger.info("  → Clock Sync: every TIME_SYNC_INTERVAL")

        logger.info("=" * 60)
        logger.info(f"✅ STARTED {len(self.services)} background services + Daily Scheduler")
        logger.info("=" * 60)

    async def stop_services(self) -> None:
        """Stop all background services gracefully."""
        logger.info("=" * 60)
        logger.info("STOPPING BACKGROUND SERVICES")
        logger.info("=" * 60)

        if self.notification_processor:
            logger.info("Stopping notification processor...")
            await self.notification_processor.stop()

        if self.daily_scheduler:
            logger.info("Stopping daily scheduler...")
            await self.daily_scheduler.stop()

        logger.info(f"Cancelling {len(self.services)} background tasks...")

        for task in self.services:
            if not task.done():
                task.cancel()

        if self.services:
            await asyncio.gather(*self.services, return_exceptions=True)

        logger.info("=" * 60)
        logger.info("✅ ALL BACKGROUND SERVICES STOPPED")
        logger.info("=" * 60)

    def signal_shutdown(self) -> None:
        """Signal that shutdown has been requested."""
        self._shutdown_event.set()

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal."""
        await self._shutdown_event.wait()


# ═══════════════════════════════════════════════════════════════════════════
# GRACEFUL SHUTDOWN
# ═══════════════════════════════════════════════════════════════════════════

def setup_signal_handlers(loop: asyncio.AbstractEventLoop, service_manager: ServiceManager) -> None:
    """
    Setup signal handlers for graceful shutdown.

    Args:
        loop: Event loop
        service_manager: Manager to signal on SIGINT/SIGTERM
    """
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(s, service_manager))
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.warning(f"Signal handler for {sig} not available on this platform")


def _on_signal(signal_type: signal.Signals, service_manager: ServiceManager) -> None:
    logger.info(f"Received exit signal {signal_type.name}...")
    service_manager.signal_shutdown()


__all__ = [
    'ServiceManager',
    'setup_signal_handlers',
]
