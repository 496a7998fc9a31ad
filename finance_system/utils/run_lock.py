# finance_system/utils/run_lock.py
"""
Day-keyed run lock for scheduled jobs, persisted in batch_runs.

One (jobName, runDate) row per business day. A completed row blocks
further runs for that day; a running row blocks until it goes stale
(the holder crashed); a failed row may be retried.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy.exc import IntegrityError

from config import Config
from core.db import get_db_session_ctx
from models.batch_run import BatchRun
from models.enums import BatchRunStatus
from finance_system.utils.money import to_json_safe

logger = logging.getLogger(__name__)


class DailyRunLock:
    """Acquire/complete/fail a job run for one business day."""

    def __init__(self, jobName: str, session_factory=None):
        self.jobName = jobName
        self.session_factory = session_factory

    def _staleAfter(self) -> timedelta:
        return timedelta(hours=Config.get(Config.BATCH_STALE_AFTER_HOURS, 6))

    def acquire(self, runDate: date, now: datetime, force: bool = False) -> bool:
        """
        Try to take the lock for runDate.

        Args:
            runDate: Business calendar date
            now: Current trusted time (naive UTC)
            force: Re-run even if the day is completed or running

        Returns:
            True if the caller may run the job
        """
        try:
            with get_db_session_ctx(self.session_factory) as session:
                run = session.query(BatchRun).filter_by(
                    jobName=self.jobName,
                    runDate=runDate
                ).with_for_update().first()

                if run is None:
                    session.add(BatchRun(
                        jobName=self.jobName,
                        runDate=runDate,
                        status=BatchRunStatus.RUNNING.value,
                        attempts=1,
                        startedAt=now
                    ))
                    logger.info(f"Run lock acquired: {self.jobName} {runDate}")
                    return True

                if not force:
                    if run.status == BatchRunStatus.COMPLETED.value:
                        logger.info(f"{self.jobName} already completed for {runDate}, skipping")
                        return False

                    if run.status == BatchRunStatus.RUNNING.value and now - run.startedAt < self._staleAfter():
                        logger.warning(
                            f"{self.jobName} for {runDate} is already running "
                            f"(started {run.startedAt}), skipping"
                        )
                        return False

                logger.info(
                    f"Run lock re-acquired: {self.jobName} {runDate} "
                    f"(previous status={run.status}, attempt {run.attempts + 1})"
                )
                run.status = BatchRunStatus.RUNNING.value
                run.attempts += 1
                run.startedAt = now
                run.finishedAt = None
                run.lastError = None
                return True

        except IntegrityError:
            # Another process inserted the row first
            logger.warning(f"Run lock for {self.jobName} {runDate} taken concurrently, skipping")
            return False

    def complete(self, runDate: date, now: datetime, summary: Optional[Dict[str, Any]] = None) -> None:
        self._finish(runDate, now, BatchRunStatus.COMPLETED, summary=summary)

    def fail(self, runDate: date, now: datetime, error: str) -> None:
        self._finish(runDate, now, BatchRunStatus.FAILED, error=error)

    def _finish(
            self,
            runDate: date,
            now: datetime,
            status: BatchRunStatus,
            summary: Optional[Dict[str, Any]] = None,
            error: Optional[str] = None
    ) -> None:
        with get_db_session_ctx(self.session_factory) as session:
            run = session.query(BatchRun).filter_by(
                jobName=self.jobName,
                runDate=runDate
            ).with_for_update().first()

            if run is None:
                logger.error(f"Run lock row missing for {self.jobName} {runDate}")
                return

            run.status = status.value
            run.finishedAt = now
            if summary is not None:
                run.summary = to_json_safe(summary)
            if error is not None:
                run.lastError = error[:1000]

        logger.info(f"Run {self.jobName} {runDate} marked {status.value}")

    def getRun(self, runDate: date) -> Optional[BatchRun]:
        """Detached snapshot of the run row."""
        with get_db_session_ctx(self.session_factory) as session:
            run = session.query(BatchRun).filter_by(
                jobName=self.jobName,
                runDate=runDate
            ).first()
            if run is not None:
                session.expunge(run)
            return run
