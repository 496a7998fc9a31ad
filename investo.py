# investo/investo.py
"""
Investo - Main entry point.
Runs the investment platform core: daily cycle scheduler and notification delivery.
"""
import asyncio
import logging
import sys

from config import Config
from core.db import setup_database
from core.system_services import ServiceManager, setup_signal_handlers
from email_system import EmailService
from finance_system.utils.time_machine import timeMachine
from models import register_all_listeners

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('investo.log')
    ]
)

logger = logging.getLogger(__name__)


async def initialize_services() -> ServiceManager:
    """
    Initialize configuration, database, clock and background services.

    Returns:
        ServiceManager: Started service manager
    """
    try:
        logger.info("=" * 60)
        logger.info("INVESTO INITIALIZATION")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 1: Load configuration from .env
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("📋 Loading configuration from .env...")
        Config.initialize_from_env()
        logger.info("✓ Configuration loaded")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 2: Validate critical configuration
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("🔍 Validating critical configuration keys...")
        await Config.validate_critical_keys()
        logger.info("✓ Configuration validated")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 3: Setup database and ledger protection
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("💾 Setting up database...")
        setup_database()
        register_all_listeners()
        logger.info("✓ Database ready")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 4: Sync trusted clock
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("🕒 Syncing trusted clock...")
        if await timeMachine.sync(force=True):
            logger.info(f"✓ Clock synced, business date {timeMachine.localDate()}")
        else:
            logger.warning(f"⚠️ Clock degraded, business date {timeMachine.localDate()} from local time")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 5: Initialize EmailService
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("Initializing email service...")
        email_service = EmailService()
        await email_service.initialize()
        logger.info("✓ EmailService initialized")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 6: Start background services
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("🚀 Starting background services...")
        service_manager = ServiceManager(email_service)
        await service_manager.start_services()
        logger.info("✓ Background services started")

        Config.set(Config.SYSTEM_READY, True)

        logger.info("=" * 60)
        logger.info("✅ INITIALIZATION COMPLETE")
        logger.info("=" * 60)

        return service_manager

    except Exception as e:
        logger.critical(f"❌ Initialization failed: {e}", exc_info=True)
        raise


async def main():
    """Main entry point."""
    service_manager = None
    try:
        service_manager = await initialize_services()

        loop = asyncio.get_running_loop()
        setup_signal_handlers(loop, service_manager)

        await service_manager.wait_for_shutdown()

    except KeyboardInterrupt:
        logger.info("⚠️ Stopped by user")
    except Exception as e:
        logger.critical(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if service_manager:
            await service_manager.stop_services()
        logger.info("👋 Investo shutdown complete")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Investo stopped")
