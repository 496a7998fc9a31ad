# background/daily_scheduler.py
"""
Daily Scheduler - runs the midnight financial cycle.
Uses APScheduler for task scheduling.

The daily job is a one-shot DateTrigger armed for the next local midnight
of the trusted clock, re-armed after every run. The local machine clock only
decides when APScheduler wakes up; the business date of the run always comes
from timeMachine, and the day-keyed run lock stops a second run for the same
date.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from core.db import get_db_session_ctx
from finance_system.services.investment_service import InvestmentService
from finance_system.services.commission_service import CommissionService
from finance_system.utils.run_lock import DailyRunLock
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

DAILY_CYCLE_JOB = "daily_cycle"

# Fire slightly after midnight so the trusted clock is already on the new day
MIDNIGHT_GRACE = timedelta(seconds=1)


class DailyScheduler:
    """
    Background scheduler for the daily cycle.

    Jobs:
    - Daily cycle: profit accrual, then affiliate rewards, at local midnight
    - Clock sync: trusted time resync every TIME_SYNC_INTERVAL
    """

    def __init__(self, session_factory=None):
        """
        Initialize scheduler.

        Args:
            session_factory: sessionmaker for batch sessions (default engine if None)
        """
        self.session_factory = session_factory
        self.isRunning = False
        self.runLock = DailyRunLock(DAILY_CYCLE_JOB, session_factory)
        self.nextRunAt: Optional[datetime] = None
        self._startupTask: Optional[asyncio.Task] = None

        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job at a time
                'misfire_grace_time': 3600  # Late wake-up still runs within an hour
            }
        )

        # Statistics
        self.stats = {
            "cyclesExecuted": 0,
            "cyclesSkipped": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastRunDate": None,
            "lastSummary": None,
            "clockSyncs": 0,
        }

    async def start(self):
        """
        Start scheduler with all jobs.

        Jobs configured:
        - Daily cycle: next local midnight of the trusted clock
        - Clock sync: every TIME_SYNC_INTERVAL seconds
        """
        if self.isRunning:
            logger.warning("Daily Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting Daily Scheduler with APScheduler")
        logger.info("=" * 60)

        self.isRunning = True
        self.stats["startedAt"] = datetime.now(timezone.utc)

        # ═══════════════════════════════════════════════════════════════
        # JOB 1: Clock Sync
        # ═══════════════════════════════════════════════════════════════
        interval = max(
            Config.get(Config.TIME_SYNC_INTERVAL, Config.MIN_TIME_SYNC_INTERVAL),
            Config.MIN_TIME_SYNC_INTERVAL
        )
        self.scheduler.add_job(
            func=self._safe_clock_sync_wrapper,
            trigger=IntervalTrigger(seconds=interval),
            id='clock_sync',
            name='Trusted Clock Sync',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Clock Sync (every {interval} seconds)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 2: Daily Cycle (next local midnight, re-armed after each run)
        # ═══════════════════════════════════════════════════════════════
        self._scheduleNextCycle()

        self.scheduler.start()

        if Config.get(Config.RUN_MISSED_CYCLE_ON_STARTUP, False):
            # Lock makes this a no-op when today's cycle already completed
            logger.info("Running today's cycle on startup if it was missed")
            self._startupTask = asyncio.create_task(self._safe_daily_cycle_wrapper(rearm=False))

        logger.info("=" * 60)
        logger.info("✅ Daily Scheduler started successfully")
        logger.info(f"Active jobs: {len(self.scheduler.get_jobs())}")
        logger.info("=" * 60)

    async def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping Daily Scheduler...")
        self.isRunning = False

        if self._startupTask and not self._startupTask.done():
            await self._startupTask
        self._startupTask = None

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("✓ Daily Scheduler stopped")

    def _nextFireTime(self, now: Optional[datetime] = None) -> datetime:
        """
        Machine-clock instant at which the trusted clock reaches next midnight.

        Returns:
            Aware UTC datetime for DateTrigger
        """
        target = timeMachine.startOfTomorrow(now) + MIDNIGHT_GRACE
        return (target - timeMachine.offset).replace(tzinfo=timezone.utc)

    def _scheduleNextCycle(self) -> None:
        if not self.isRunning:
            return

        fireAt = self._nextFireTime()
        self.scheduler.add_job(
            func=self._safe_daily_cycle_wrapper,
            trigger=DateTrigger(run_date=fireAt),
            id=DAILY_CYCLE_JOB,
            name='Daily Cycle (local midnight)',
            replace_existing=True
        )
        self.nextRunAt = fireAt
        logger.info(
            f"✓ Daily cycle armed for {fireAt.isoformat()} "
            f"(local {fireAt.astimezone(timeMachine.timezone).isoformat()})"
        )

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    async def _safe_daily_cycle_wrapper(self, rearm: bool = True):
        """Safe wrapper for the daily cycle; always re-arms the next run."""
        try:
            await timeMachine.sync()
            await self.runDailyCycle()
        except Exception as e:
            logger.error(f"Error in daily cycle job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)
        finally:
            if rearm:
                self._scheduleNextCycle()

    async def _safe_clock_sync_wrapper(self):
        """Safe wrapper for clock sync."""
        try:
            await timeMachine.sync(force=True)
            self.stats["clockSyncs"] += 1
        except Exception as e:
            logger.error(f"Error in clock sync job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    # ═══════════════════════════════════════════════════════════════════
    # DAILY CYCLE
    # ═══════════════════════════════════════════════════════════════════

    async def runDailyCycle(self, now: Optional[datetime] = None, force: bool = False) -> Optional[Dict[str, Any]]:
        """
        Run profit accrual, then affiliate rewards, for the business date of now.

        Each step uses its own session; items inside a step commit one by
        one. A step that raises marks the run failed so it can be retried.

        Args:
            now: Trusted time of the run (timeMachine.now if None)
            force: Run even if the date already completed

        Returns:
            Summary dict or None if the run lock was not acquired
        """
        now = now or timeMachine.now
        runDate = timeMachine.localDate(now)

        if not self.runLock.acquire(runDate, now, force=force):
            self.stats["cyclesSkipped"] += 1
            return None

        logger.info(f"Executing daily cycle for {runDate}")

        try:
            with get_db_session_ctx(self.session_factory) as session:
                accrual = await InvestmentService(session).accrueDailyProfit(now)

            with get_db_session_ctx(self.session_factory) as session:
                rewards = await CommissionService(session).processDailyAffiliateRewards(now)

        except Exception as e:
            logger.error(f"Daily cycle for {runDate} failed: {e}", exc_info=True)
            self.runLock.fail(runDate, timeMachine.now, str(e))
            raise

        summary = {
            "runDate": runDate,
            "clockDegraded": timeMachine.isDegraded,
            "accrual": accrual,
            "affiliateRewards": rewards,
        }
        self.runLock.complete(runDate, timeMachine.now, summary)

        self.stats["cyclesExecuted"] += 1
        self.stats["lastRunDate"] = runDate
        self.stats["lastSummary"] = summary

        logger.info(
            f"Daily cycle for {runDate} completed: "
            f"profit={accrual['totalProfit']}, rewards={rewards['totalProcessed']}, "
            f"errors={len(accrual['errors']) + len(rewards['perReferrerErrors'])}"
        )
        return summary

    def getStatus(self) -> dict:
        """Get scheduler status."""
        jobs_info = []
        if self.scheduler.running:
            for job in self.scheduler.get_jobs():
                jobs_info.append({
                    "id": job.id,
                    "name": job.name,
                    "next_run": job.next_run_time.isoformat() if job.next_run_time else None
                })

        return {
            "isRunning": self.isRunning,
            "schedulerRunning": self.scheduler.running,
            "clock": timeMachine.getStatus(),
            "stats": self.stats,
            "jobs": jobs_info
        }
