# finance_system/__init__.py
"""
Finance System - ledger, investments, affiliate commissions and trusted time.
"""

# Services
from finance_system.services.ledger_service import LedgerService
from finance_system.services.investment_service import InvestmentService
from finance_system.services.commission_service import CommissionService
from finance_system.services.account_service import AccountService
from finance_system.services.plan_service import PlanService
from finance_system.services.withdrawal_service import WithdrawalService
from finance_system.services.portfolio_service import PortfolioService
from finance_system.services.notification_service import NotificationService

# Configuration
from finance_system.config.commission_rates import CommissionRate, RateType

# Utilities
from finance_system.utils.time_machine import timeMachine
from finance_system.utils.run_lock import DailyRunLock

# Errors
from finance_system.errors import (
    FinanceError,
    InvalidAmount,
    InsufficientFunds,
    AlreadyProcessed,
    NotFound,
    RateNotConfigured,
    ClockDegraded,
    BatchItemFailed,
)

__all__ = [
    # Services
    'LedgerService',
    'InvestmentService',
    'CommissionService',
    'AccountService',
    'PlanService',
    'WithdrawalService',
    'PortfolioService',
    'NotificationService',

    # Config
    'CommissionRate',
    'RateType',

    # Utils
    'timeMachine',
    'DailyRunLock',

    # Errors
    'FinanceError',
    'InvalidAmount',
    'InsufficientFunds',
    'AlreadyProcessed',
    'NotFound',
    'RateNotConfigured',
    'ClockDegraded',
    'BatchItemFailed',
]
