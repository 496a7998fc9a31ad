#!/usr/bin/env python3
"""
Seed the default investment plans, one per affiliate level.

Existing plans (matched by name) are left untouched.

Usage:
    python scripts/seed_plans.py
"""

import sys
import os
import asyncio
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_db_session_ctx, setup_database
from models.investment_plan import InvestmentPlan
from finance_system.services.plan_service import PlanService

import logging

logging.basicConfig(level=logging.WARNING)


DEFAULT_PLANS = [
    {
        "name": "Basic",
        "description": "Entry plan with daily income",
        "minAmount": Decimal("2"),
        "maxAmount": Decimal("9"),
        "durationInDays": 30,
        "dailyIncome": Decimal("1.5"),
        "minLevel": 1,
        "features": ["Daily income", "Withdraw any time"],
    },
    {
        "name": "Standard",
        "description": "Daily income for growing portfolios",
        "minAmount": Decimal("10"),
        "maxAmount": Decimal("199"),
        "durationInDays": 60,
        "dailyIncome": Decimal("2"),
        "minLevel": 2,
        "features": ["Daily income", "Affiliate level 2"],
    },
    {
        "name": "Premium",
        "description": "Higher daily income",
        "minAmount": Decimal("200"),
        "maxAmount": Decimal("499"),
        "durationInDays": 90,
        "dailyIncome": Decimal("2.5"),
        "minLevel": 3,
        "features": ["Daily income", "Affiliate level 3"],
        "isFeatured": True,
    },
    {
        "name": "Elite",
        "description": "Top tier plan without upper limit",
        "minAmount": Decimal("500"),
        "maxAmount": None,
        "durationInDays": 120,
        "dailyIncome": Decimal("3"),
        "minLevel": 4,
        "features": ["Daily income", "Affiliate level 4", "Priority support"],
    },
]


async def seed() -> None:
    Config.initialize_from_env()
    setup_database()

    with get_db_session_ctx() as session:
        service = PlanService(session)
        for data in DEFAULT_PLANS:
            if session.query(InvestmentPlan.planID).filter_by(name=data["name"]).first():
                print(f"  • {data['name']:10} exists, skipped")
                continue
            plan = await service.createPlan(**data)
            print(
                f"  ✓ {plan.name:10} level {plan.minLevel}, "
                f"{plan.minAmount} - {plan.maxAmount or 'unlimited'}, "
                f"{plan.dailyIncome}% daily for {plan.durationInDays} days"
            )

    print("\n✅ Plans seeded")


def main():
    """Seed plans."""
    print("\n" + "=" * 80)
    print("SEEDING INVESTMENT PLANS")
    print("=" * 80)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
