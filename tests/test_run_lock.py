# tests/test_run_lock.py
"""
Tests for the day-keyed run lock.

Run:
    pytest tests/test_run_lock.py -v
"""
from datetime import date, datetime, timedelta

import pytest

from models.enums import BatchRunStatus
from finance_system.utils.run_lock import DailyRunLock

RUN_DATE = date(2026, 3, 1)
NOW = datetime(2026, 3, 1, 7, 0)


@pytest.fixture
def lock(session_factory):
    return DailyRunLock("test_job", session_factory)


def test_first_acquire(lock):
    assert lock.acquire(RUN_DATE, NOW) is True

    run = lock.getRun(RUN_DATE)
    assert run.status == BatchRunStatus.RUNNING.value
    assert run.attempts == 1


def test_running_blocks_second_acquire(lock):
    lock.acquire(RUN_DATE, NOW)

    assert lock.acquire(RUN_DATE, NOW + timedelta(minutes=5)) is False


def test_stale_running_is_taken_over(lock):
    lock.acquire(RUN_DATE, NOW)

    assert lock.acquire(RUN_DATE, NOW + timedelta(hours=7)) is True
    assert lock.getRun(RUN_DATE).attempts == 2


def test_completed_blocks_until_forced(lock):
    lock.acquire(RUN_DATE, NOW)
    lock.complete(RUN_DATE, NOW, {"total": 1})

    assert lock.acquire(RUN_DATE, NOW) is False
    assert lock.acquire(RUN_DATE, NOW, force=True) is True

    run = lock.getRun(RUN_DATE)
    assert run.status == BatchRunStatus.RUNNING.value
    assert run.finishedAt is None


def test_failed_can_be_retried(lock):
    lock.acquire(RUN_DATE, NOW)
    lock.fail(RUN_DATE, NOW, "database went away")

    run = lock.getRun(RUN_DATE)
    assert run.status == BatchRunStatus.FAILED.value
    assert run.lastError == "database went away"

    assert lock.acquire(RUN_DATE, NOW) is True
    assert lock.getRun(RUN_DATE).lastError is None


def test_days_and_jobs_are_independent(lock, session_factory):
    lock.acquire(RUN_DATE, NOW)

    assert lock.acquire(RUN_DATE + timedelta(days=1), NOW) is True
    assert DailyRunLock("other_job", session_factory).acquire(RUN_DATE, NOW) is True


def test_summary_stored_as_json(lock):
    lock.acquire(RUN_DATE, NOW)
    lock.complete(RUN_DATE, NOW, {"runDate": RUN_DATE, "total": 1})

    assert lock.getRun(RUN_DATE).summary == {"runDate": "2026-03-01", "total": 1}
