#!/usr/bin/env python3
"""
Run the daily cycle once: profit accrual, then affiliate rewards.

Without --date the trusted clock decides the business date. With --date the
cycle is replayed at local noon of that date on virtual time.

Usage:
    python scripts/run_daily_cycle.py
    python scripts/run_daily_cycle.py --date 2026-03-15
    python scripts/run_daily_cycle.py --date 2026-03-15 --force
"""

import sys
import os
import argparse
import asyncio
import json
from datetime import date, datetime, time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import setup_database
from models import register_all_listeners
from background.daily_scheduler import DailyScheduler
from finance_system.utils.money import to_json_safe
from finance_system.utils.time_machine import timeMachine

import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}")


async def run(args) -> int:
    Config.initialize_from_env()
    setup_database()
    register_all_listeners()

    if args.date:
        noon = datetime.combine(args.date, time(12, 0), tzinfo=timeMachine.timezone)
        timeMachine.setTime(noon)
    else:
        await timeMachine.sync(force=True)

    scheduler = DailyScheduler()
    summary = await scheduler.runDailyCycle(force=args.force)

    if summary is None:
        print(f"⚠️  Cycle for {timeMachine.localDate()} already completed or running (use --force)")
        return 1

    print(json.dumps(to_json_safe(summary), indent=2))

    errors = len(summary["accrual"]["errors"]) + len(summary["affiliateRewards"]["perReferrerErrors"])
    if errors:
        print(f"\n⚠️  {errors} item(s) failed, see log")
        return 2

    print(f"\n✅ Daily cycle for {summary['runDate']} completed")
    return 0


def main():
    """Run one daily cycle."""
    parser = argparse.ArgumentParser(description='Run the daily financial cycle once')
    parser.add_argument('--date', type=parse_date, help='Business date to replay (YYYY-MM-DD)')
    parser.add_argument('--force', action='store_true', help='Run even if the date already completed')
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
