# finance_system/utils/time_machine.py
"""
Trusted clock for all financial dates.

Real mode: local UTC clock corrected by an offset measured against trusted
HTTP time sources, resynced at most once per TIME_SYNC_INTERVAL.
Test mode: virtual time set by setTime()/advance().

`now` is naive UTC (what the DateTime columns store). Calendar dates
(accrual days, reward days, run locks) are taken in the fixed business
timezone.

Usage:
    from finance_system.utils.time_machine import timeMachine

    await timeMachine.sync()
    today = timeMachine.localDate()
"""
import logging
import re
import time
from datetime import datetime, date, timedelta, timezone
from typing import Optional, Dict, Any, List
from zoneinfo import ZoneInfo

import aiohttp

from config import Config, DEFAULT_TIME_SOURCES
from finance_system.errors import ClockDegraded

logger = logging.getLogger(__name__)

# timeapi.io returns 7 fractional digits, fromisoformat wants at most 6
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_source_time(value: str, assume_tz: str = "UTC") -> datetime:
    """
    Parse an ISO-8601 timestamp returned by a time source into aware UTC.

    Naive timestamps are interpreted in assume_tz.

    Raises:
        ValueError: If value is not an ISO-8601 timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO timestamp string, got {value!r}")

    cleaned = _FRACTION_RE.sub(r"\1", value.strip())
    parsed = datetime.fromisoformat(cleaned)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(assume_tz))

    return parsed.astimezone(timezone.utc)


class TimeMachine:
    """Trusted clock with virtual time support."""

    def __init__(self):
        self._virtualTime: Optional[datetime] = None
        self._offset = timedelta(0)
        self._lastSyncMonotonic: Optional[float] = None
        self.lastSyncAt: Optional[datetime] = None
        self.lastSource: Optional[str] = None
        self.isDegraded = False

    # ═══════════════════════════════════════════════════════════════════
    # CURRENT TIME
    # ═══════════════════════════════════════════════════════════════════

    @property
    def now(self) -> datetime:
        """Current trusted time, naive UTC."""
        if self._virtualTime is not None:
            return self._virtualTime
        return datetime.now(timezone.utc).replace(tzinfo=None) + self._offset

    @property
    def isTestMode(self) -> bool:
        return self._virtualTime is not None

    @property
    def offset(self) -> timedelta:
        return self._offset

    @property
    def timezone(self) -> ZoneInfo:
        """Fixed business timezone."""
        return ZoneInfo(Config.get(Config.BUSINESS_TIMEZONE, "Asia/Karachi"))

    def localNow(self, now: Optional[datetime] = None) -> datetime:
        """Aware datetime in the business timezone."""
        moment = now if now is not None else self.now
        return moment.replace(tzinfo=timezone.utc).astimezone(self.timezone)

    def localDate(self, now: Optional[datetime] = None) -> date:
        """Business calendar date."""
        return self.localNow(now).date()

    def startOfToday(self, now: Optional[datetime] = None) -> datetime:
        """Local midnight of the current business day, as naive UTC."""
        local = self.localNow(now)
        midnight = datetime.combine(local.date(), datetime.min.time(), tzinfo=self.timezone)
        return midnight.astimezone(timezone.utc).replace(tzinfo=None)

    def startOfTomorrow(self, now: Optional[datetime] = None) -> datetime:
        """Next local midnight, as naive UTC."""
        local = self.localNow(now)
        tomorrow = local.date() + timedelta(days=1)
        midnight = datetime.combine(tomorrow, datetime.min.time(), tzinfo=self.timezone)
        return midnight.astimezone(timezone.utc).replace(tzinfo=None)

    def secondsUntilMidnight(self, now: Optional[datetime] = None) -> float:
        moment = now if now is not None else self.now
        return (self.startOfTomorrow(moment) - moment).total_seconds()

    # ═══════════════════════════════════════════════════════════════════
    # VIRTUAL TIME (tests, manual replays)
    # ═══════════════════════════════════════════════════════════════════

    def setTime(self, value: datetime) -> None:
        """Freeze time at value (aware values are converted to naive UTC)."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        self._virtualTime = value
        logger.info(f"Virtual time set: {value.isoformat()} UTC")

    def advance(self, **kwargs) -> datetime:
        """Move virtual time forward, e.g. advance(days=1)."""
        if self._virtualTime is None:
            self._virtualTime = self.now
        self._virtualTime += timedelta(**kwargs)
        logger.info(f"Virtual time advanced to {self._virtualTime.isoformat()} UTC")
        return self._virtualTime

    def resetToRealTime(self) -> None:
        self._virtualTime = None
        logger.info("Returned to real time")

    # ═══════════════════════════════════════════════════════════════════
    # SYNC WITH TRUSTED SOURCES
    # ═══════════════════════════════════════════════════════════════════

    def _syncIsFresh(self) -> bool:
        if self._lastSyncMonotonic is None:
            return False
        interval = max(
            Config.get(Config.TIME_SYNC_INTERVAL, Config.MIN_TIME_SYNC_INTERVAL),
            Config.MIN_TIME_SYNC_INTERVAL
        )
        return (time.monotonic() - self._lastSyncMonotonic) < interval

    async def sync(self, force: bool = False) -> bool:
        """
        Measure the offset against trusted sources, first success wins.

        Never raises: when every source fails the clock keeps its last
        offset (zero if never synced) and is flagged degraded.

        Returns:
            True if a trusted source answered
        """
        if not force and self._syncIsFresh():
            return not self.isDegraded

        sources: List[Dict[str, Any]] = Config.get(Config.TIME_SOURCES) or DEFAULT_TIME_SOURCES
        timeout = aiohttp.ClientTimeout(total=Config.get(Config.TIME_SOURCE_TIMEOUT, 5))

        for source in sources:
            trusted = await self._fetchSourceTime(source, timeout)
            if trusted is None:
                continue

            local = datetime.now(timezone.utc)
            self._offset = trusted.replace(tzinfo=None) - local.replace(tzinfo=None)
            self._lastSyncMonotonic = time.monotonic()
            self.lastSyncAt = local.replace(tzinfo=None)
            self.lastSource = source.get("name", source.get("url"))
            if self.isDegraded:
                logger.info("Trusted clock recovered")
            self.isDegraded = False

            logger.info(
                f"✓ Time synced with {self.lastSource}: offset {self._offset.total_seconds():.3f}s"
            )
            return True

        self.isDegraded = True
        self._lastSyncMonotonic = time.monotonic()
        logger.warning(
            f"{ClockDegraded.__name__}: all {len(sources)} time sources failed, "
            f"using local clock (offset {self._offset.total_seconds():.3f}s)"
        )
        return False

    async def _fetchSourceTime(
            self,
            source: Dict[str, Any],
            timeout: aiohttp.ClientTimeout
    ) -> Optional[datetime]:
        """
        Fetch and parse one source.

        Returns:
            Aware UTC datetime or None if the source is unavailable
        """
        url = source.get("url")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.warning(f"Time source {url} returned status {response.status}")
                        return None

                    data = await response.json(content_type=None)
                    return parse_source_time(
                        data[source.get("field", "datetime")],
                        source.get("timezone", "UTC")
                    )

        except aiohttp.ClientError as e:
            logger.warning(f"Time source {url} client error: {e}")
            return None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Time source {url} returned unparsable data: {e}")
            return None
        except TimeoutError:
            logger.warning(f"Time source {url} timed out")
            return None

    def getStatus(self) -> Dict[str, Any]:
        return {
            "now": self.now.isoformat(),
            "localDate": self.localDate().isoformat(),
            "timezone": str(self.timezone),
            "isTestMode": self.isTestMode,
            "isDegraded": self.isDegraded,
            "offsetSeconds": self._offset.total_seconds(),
            "lastSource": self.lastSource,
            "lastSyncAt": self.lastSyncAt.isoformat() if self.lastSyncAt else None,
        }


# Global instance
timeMachine = TimeMachine()
