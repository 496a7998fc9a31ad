# tests/test_time_machine.py
"""
Tests for the trusted clock.

Sources are faked by patching _fetchSourceTime; no network access.

Run:
    pytest tests/test_time_machine.py -v
"""
import logging
from datetime import date, datetime, timedelta, timezone

import pytest

from config import Config
from finance_system.utils.time_machine import TimeMachine, parse_source_time

SOURCES = [
    {"name": "primary", "url": "https://primary.example.com/time"},
    {"name": "secondary", "url": "https://secondary.example.com/time"},
]


@pytest.fixture
def clock(monkeypatch):
    """Fresh real-mode clock with two fake sources."""
    monkeypatch.setitem(Config._config, Config.TIME_SOURCES, SOURCES)
    return TimeMachine()


def fake_sources(monkeypatch, clock, answers):
    """answers: {source name: aware datetime or None}; returns the call log."""
    calls = []

    async def fetch(source, timeout):
        calls.append(source["name"])
        return answers.get(source["name"])

    monkeypatch.setattr(clock, "_fetchSourceTime", fetch)
    return calls


class TestParseSourceTime:

    def test_seven_fraction_digits(self):
        parsed = parse_source_time("2026-03-01T12:00:00.1234567")
        assert parsed == datetime(2026, 3, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

    def test_naive_value_in_source_timezone(self):
        parsed = parse_source_time("2026-03-01T05:00:00", assume_tz="Asia/Karachi")
        assert parsed == datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)

    def test_offset_value(self):
        parsed = parse_source_time("2026-03-01T05:00:00+05:00")
        assert parsed.hour == 0

    @pytest.mark.parametrize("value", [None, 12345, "yesterday"])
    def test_garbage(self, value):
        with pytest.raises(ValueError):
            parse_source_time(value)


class TestSync:

    @pytest.mark.asyncio
    async def test_first_source_wins(self, monkeypatch, clock):
        ahead = datetime.now(timezone.utc) + timedelta(minutes=10)
        calls = fake_sources(monkeypatch, clock, {"primary": ahead, "secondary": ahead})

        assert await clock.sync(force=True) is True

        assert calls == ["primary"]
        assert clock.lastSource == "primary"
        assert clock.isDegraded is False
        assert timedelta(minutes=9) < clock.offset < timedelta(minutes=11)
        assert clock.now > datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(minutes=9)

    @pytest.mark.asyncio
    async def test_falls_back_in_order(self, monkeypatch, clock):
        calls = fake_sources(monkeypatch, clock, {"secondary": datetime.now(timezone.utc)})

        assert await clock.sync(force=True) is True

        assert calls == ["primary", "secondary"]
        assert clock.lastSource == "secondary"

    @pytest.mark.asyncio
    async def test_all_sources_down(self, monkeypatch, clock, caplog):
        fake_sources(monkeypatch, clock, {})

        with caplog.at_level(logging.WARNING, logger="finance_system.utils.time_machine"):
            assert await clock.sync(force=True) is False

        assert clock.isDegraded is True
        assert clock.offset == timedelta(0)
        assert "ClockDegraded" in caplog.text
        # still usable
        assert abs(clock.now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)

    @pytest.mark.asyncio
    async def test_recovers_after_degraded(self, monkeypatch, clock):
        fake_sources(monkeypatch, clock, {})
        await clock.sync(force=True)

        fake_sources(monkeypatch, clock, {"primary": datetime.now(timezone.utc)})
        assert await clock.sync(force=True) is True
        assert clock.isDegraded is False

    @pytest.mark.asyncio
    async def test_fresh_sync_not_repeated(self, monkeypatch, clock):
        calls = fake_sources(monkeypatch, clock, {"primary": datetime.now(timezone.utc)})

        await clock.sync()
        await clock.sync()

        assert calls == ["primary"]


class TestBusinessCalendar:

    def test_local_date_rolls_at_karachi_midnight(self):
        clock = TimeMachine()
        # 18:59 UTC == 23:59 PKT, 19:00 UTC == 00:00 PKT next day
        assert clock.localDate(datetime(2026, 3, 1, 18, 59)) == date(2026, 3, 1)
        assert clock.localDate(datetime(2026, 3, 1, 19, 0)) == date(2026, 3, 2)

    def test_start_of_today_and_tomorrow(self):
        clock = TimeMachine()
        now = datetime(2026, 3, 1, 7, 0)

        assert clock.startOfToday(now) == datetime(2026, 2, 28, 19, 0)
        assert clock.startOfTomorrow(now) == datetime(2026, 3, 1, 19, 0)
        assert clock.secondsUntilMidnight(now) == 12 * 3600

    def test_virtual_time(self):
        clock = TimeMachine()
        clock.setTime(datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=5))))

        assert clock.isTestMode is True
        assert clock.now == datetime(2026, 3, 1, 7, 0)
        assert clock.advance(days=1) == datetime(2026, 3, 2, 7, 0)

        clock.resetToRealTime()
        assert clock.isTestMode is False
