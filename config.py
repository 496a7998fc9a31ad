# investo/config.py
"""
Configuration management for Investo.
Loads from .env, validates critical keys.
"""
import os
import json
import logging
from typing import Any, Dict, List
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


# Trusted time sources, tried in order. Naive timestamps are read in "timezone".
DEFAULT_TIME_SOURCES: List[Dict[str, str]] = [
    {
        "name": "worldtimeapi",
        "url": "https://worldtimeapi.org/api/timezone/Asia/Karachi",
        "field": "datetime",
        "timezone": "Asia/Karachi",
    },
    {
        "name": "timeapi.io",
        "url": "https://timeapi.io/api/Time/current/zone?timeZone=Asia/Karachi",
        "field": "dateTime",
        "timezone": "Asia/Karachi",
    },
    {
        "name": "timeapi.vercel",
        "url": "https://timeapi.vercel.app/api/Time/current/zone?timeZone=Asia/Karachi",
        "field": "dateTime",
        "timezone": "Asia/Karachi",
    },
    {
        "name": "worldclockapi",
        "url": "https://worldclockapi.com/api/json/utc/now",
        "field": "currentDateTime",
        "timezone": "UTC",
    },
]


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Set dynamic value
        Config.set(Config.SYSTEM_READY, True)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Access
    ADMIN_USER_IDS = "ADMIN_USER_IDS"

    # Database
    DATABASE_URL = "DATABASE_URL"

    # Money
    DEFAULT_CURRENCY = "DEFAULT_CURRENCY"

    # Clock
    BUSINESS_TIMEZONE = "BUSINESS_TIMEZONE"
    TIME_SOURCES = "TIME_SOURCES"
    TIME_SYNC_INTERVAL = "TIME_SYNC_INTERVAL"
    TIME_SOURCE_TIMEOUT = "TIME_SOURCE_TIMEOUT"

    # Commissions
    DAILY_COMMISSION_RATES = "DAILY_COMMISSION_RATES"
    FIRST_PURCHASE_COMMISSION_RATES = "FIRST_PURCHASE_COMMISSION_RATES"

    # Scheduler
    BATCH_STALE_AFTER_HOURS = "BATCH_STALE_AFTER_HOURS"
    RUN_MISSED_CYCLE_ON_STARTUP = "RUN_MISSED_CYCLE_ON_STARTUP"

    # Email - SMTP
    SMTP_HOST = "SMTP_HOST"
    SMTP_PORT = "SMTP_PORT"
    SMTP_USERNAME = "SMTP_USERNAME"
    SMTP_PASSWORD = "SMTP_PASSWORD"
    SMTP_USE_TLS = "SMTP_USE_TLS"
    SMTP_FROM_EMAIL = "SMTP_FROM_EMAIL"

    # Notifications
    NOTIFICATION_POLL_INTERVAL = "NOTIFICATION_POLL_INTERVAL"
    NOTIFICATION_MAX_ATTEMPTS = "NOTIFICATION_MAX_ATTEMPTS"

    # System
    SYSTEM_READY = "SYSTEM_READY"

    # Minimum allowed resync interval for the trusted clock (seconds)
    MIN_TIME_SYNC_INTERVAL = 3600

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
        BUSINESS_TIMEZONE,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            admin_ids_str = os.getenv("ADMIN_USER_IDS", "")
            if admin_ids_str:
                cls._config[cls.ADMIN_USER_IDS] = [
                    int(x.strip()) for x in admin_ids_str.split(',')
                ]
            else:
                cls._config[cls.ADMIN_USER_IDS] = []

            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///investo.db"
            )

            # Money
            cls._config[cls.DEFAULT_CURRENCY] = os.getenv("DEFAULT_CURRENCY", "USD")

            # Clock
            cls._config[cls.BUSINESS_TIMEZONE] = os.getenv("BUSINESS_TIMEZONE", "Asia/Karachi")
            cls._config[cls.TIME_SOURCES] = cls._load_json(
                "TIME_SOURCES", DEFAULT_TIME_SOURCES
            )

            sync_interval = int(os.getenv("TIME_SYNC_INTERVAL", "3600"))
            if sync_interval < cls.MIN_TIME_SYNC_INTERVAL:
                logger.warning(
                    f"TIME_SYNC_INTERVAL={sync_interval}s is below the minimum, "
                    f"using {cls.MIN_TIME_SYNC_INTERVAL}s"
                )
                sync_interval = cls.MIN_TIME_SYNC_INTERVAL
            cls._config[cls.TIME_SYNC_INTERVAL] = sync_interval
            cls._config[cls.TIME_SOURCE_TIMEOUT] = int(os.getenv("TIME_SOURCE_TIMEOUT", "5"))

            # Commissions (JSON overrides, defaults live in finance_system.config)
            cls._config[cls.DAILY_COMMISSION_RATES] = cls._load_json(
                "DAILY_COMMISSION_RATES", None
            )
            cls._config[cls.FIRST_PURCHASE_COMMISSION_RATES] = cls._load_json(
                "FIRST_PURCHASE_COMMISSION_RATES", None
            )

            # Scheduler
            cls._config[cls.BATCH_STALE_AFTER_HOURS] = int(
                os.getenv("BATCH_STALE_AFTER_HOURS", "6")
            )
            cls._config[cls.RUN_MISSED_CYCLE_ON_STARTUP] = (
                os.getenv("RUN_MISSED_CYCLE_ON_STARTUP", "false").lower() == "true"
            )

            # Email - SMTP
            cls._config[cls.SMTP_HOST] = os.getenv("SMTP_HOST")
            cls._config[cls.SMTP_PORT] = int(os.getenv("SMTP_PORT", "587"))
            cls._config[cls.SMTP_USERNAME] = os.getenv("SMTP_USERNAME")
            cls._config[cls.SMTP_PASSWORD] = os.getenv("SMTP_PASSWORD")
            cls._config[cls.SMTP_USE_TLS] = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
            cls._config[cls.SMTP_FROM_EMAIL] = os.getenv(
                "SMTP_FROM_EMAIL",
                "noreply@investo.local"
            )

            # Notifications
            cls._config[cls.NOTIFICATION_POLL_INTERVAL] = int(
                os.getenv("NOTIFICATION_POLL_INTERVAL", "10")
            )
            cls._config[cls.NOTIFICATION_MAX_ATTEMPTS] = int(
                os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3")
            )

            # System
            cls._config[cls.SYSTEM_READY] = False

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @staticmethod
    def _load_json(env_name: str, default: Any) -> Any:
        """Parse a JSON environment variable, falling back to default."""
        raw = os.getenv(env_name)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse {env_name} JSON: {e}")
            return default

    @classmethod
    async def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return cls._config.get(key, default)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """
        Set configuration value.

        Args:
            key: Configuration key
            value: New value
            source: Where the value comes from (for logging)
        """
        cls._config[key] = value
        logger.debug(f"Config set: {key} (source={source})")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """Get a copy of all configuration values."""
        return dict(cls._config)

    @classmethod
    def is_admin(cls, user_id: int) -> bool:
        """Check whether user ID belongs to an administrator."""
        return user_id in cls.get(cls.ADMIN_USER_IDS, [])

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized
