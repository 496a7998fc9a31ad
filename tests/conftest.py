# tests/conftest.py
"""
Pytest configuration and shared fixtures for the finance core tests.

Every test gets its own SQLite file database with the production engine
settings (BEGIN IMMEDIATE writers) and a frozen virtual clock.

Run:
    pytest tests -v
"""
import itertools
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, case, type_coerce
from sqlalchemy.orm import sessionmaker

from config import Config
from core.db import create_db_engine
from models import (
    Base,
    User,
    Deposit,
    Investment,
    InvestmentPlan,
    Transaction,
    register_all_listeners,
)
from models.enums import DepositStatus, InvestmentStatus, TransactionSource
from models.types import MoneyType
from finance_system.config.commission_rates import reset_rate_cache
from finance_system.services.ledger_service import LedgerService
from finance_system.utils.time_machine import timeMachine

# =============================================================================
# INITIALIZE CONFIG
# =============================================================================

Config.initialize_from_env()
Config.set(Config.BUSINESS_TIMEZONE, "Asia/Karachi", source="tests")
Config.set(Config.DEFAULT_CURRENCY, "USD", source="tests")
Config.set(Config.DAILY_COMMISSION_RATES, None, source="tests")
Config.set(Config.FIRST_PURCHASE_COMMISSION_RATES, None, source="tests")

# =============================================================================
# CONSTANTS
# =============================================================================

# 2026-03-01 12:00 in Asia/Karachi (UTC+5)
START_TIME = datetime(2026, 3, 1, 7, 0, 0)

_sequence = itertools.count(1)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_listeners():
    """Register listeners once at test session start."""
    register_all_listeners()


@pytest.fixture
def engine(tmp_path):
    """File database so that threads and batch sessions share it."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'investo_test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    """
    Database session for each test.

    SQLite writers are serialized: commit before handing control to code
    that opens its own sessions (scheduler, threads, processors).
    """
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# CLOCK / CONFIG FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def frozen_time():
    """Freeze the trusted clock at START_TIME."""
    timeMachine.setTime(START_TIME)
    yield timeMachine
    timeMachine.resetToRealTime()


@pytest.fixture(autouse=True)
def default_rates():
    """Default commission tables for every test."""
    reset_rate_cache()
    yield
    Config.set(Config.DAILY_COMMISSION_RATES, None, source="tests")
    Config.set(Config.FIRST_PURCHASE_COMMISSION_RATES, None, source="tests")
    reset_rate_cache()


@pytest.fixture
def day():
    """now for the n-th business day after START_TIME (day(0) == START_TIME)."""

    def _day(n: int) -> datetime:
        return START_TIME + timedelta(days=n)

    return _day


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(session):
    """Create a user; referrer is a User or None."""

    def _make(level: int = 0, referrer: User = None, name: str = None) -> User:
        n = next(_sequence)
        user = User(
            email=f"user{n}@example.com",
            name=name or f"User {n}",
            level=level,
            referrerID=referrer.userID if referrer else None,
            affiliateCode=f"TST{n:06d}",
            affiliateEarnings=Decimal("0"),
            hasInvested=False,
            isActive=True
        )
        session.add(user)
        session.flush()
        return user

    return _make


@pytest.fixture
def make_plan(session):
    """Create an investment plan, running yield 1%/day for 30 days by default."""

    def _make(**overrides) -> InvestmentPlan:
        n = next(_sequence)
        data = dict(
            name=f"Plan {n}",
            description="Test plan",
            minAmount=Decimal("1"),
            maxAmount=None,
            durationInDays=30,
            isFixedDeposit=False,
            returnRate=None,
            dailyIncome=Decimal("1"),
            minLevel=1,
            features=[],
            isActive=True,
            isFeatured=False
        )
        data.update(overrides)
        plan = InvestmentPlan(**data)
        session.add(plan)
        session.flush()
        return plan

    return _make


@pytest.fixture
def make_deposit(session):
    """Create a pending deposit."""

    def _make(user: User, amount="100") -> Deposit:
        deposit = Deposit(
            userID=user.userID,
            amount=Decimal(str(amount)),
            currency="USD",
            paymentMethod="bank_transfer",
            evidenceUrl="https://files.example.com/proof.png",
            status=DepositStatus.PENDING.value
        )
        session.add(deposit)
        session.flush()
        return deposit

    return _make


@pytest.fixture
def make_investment(session):
    """Create an active investment without going through deposit approval."""

    def _make(user: User, plan: InvestmentPlan, amount="100", start: datetime = None) -> Investment:
        start = start or START_TIME
        investment = Investment(
            userID=user.userID,
            planID=plan.planID,
            amount=Decimal(str(amount)),
            initialAmount=Decimal(str(amount)),
            profit=Decimal("0"),
            status=InvestmentStatus.ACTIVE.value,
            startDate=start,
            endDate=start + timedelta(days=plan.durationInDays),
            daysAccrued=0,
            isFirstPurchase=False
        )
        session.add(investment)
        session.flush()
        return investment

    return _make


@pytest.fixture
def fund(session):
    """Credit a user's wallet."""

    async def _fund(user: User, amount) -> Transaction:
        return await LedgerService(session).credit(
            user.userID, amount, TransactionSource.BONUS, "Test funding"
        )

    return _fund


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def calc_journal_sum(session):
    """
    Calculator for real journal sum.

    Takes userID and returns SUM(credits) - SUM(debits) WHERE status='completed'.
    """

    def _calc(user_id: int) -> Decimal:
        signed = case(
            (Transaction.type == 'debit', -Transaction.amount),
            else_=Transaction.amount
        )
        result = session.query(
            type_coerce(func.coalesce(func.sum(signed), 0), MoneyType)
        ).filter(
            Transaction.userID == user_id,
            Transaction.status == 'completed'
        ).scalar()
        return Decimal(str(result)).quantize(Decimal("0.00000001"))

    return _calc


@pytest.fixture
def balance_of(session):
    """Current wallet balance of a user."""

    def _balance(user: User) -> Decimal:
        return LedgerService(session).getBalance(user.userID)

    return _balance
