"""
Database models for Investo.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Accounts and ledger
from models.user import User
from models.wallet import Wallet
from models.transaction import Transaction

# Investments
from models.investment_plan import InvestmentPlan
from models.deposit import Deposit
from models.investment import Investment
from models.withdrawal import Withdrawal

# Affiliate program
from models.affiliate_reward import AffiliateReward

# System
from models.batch_run import BatchRun
from models.notification import Notification

# Event listeners
from models.listeners import register_all_listeners

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Ledger
    'User',
    'Wallet',
    'Transaction',

    # Investments
    'InvestmentPlan',
    'Deposit',
    'Investment',
    'Withdrawal',

    # Affiliate
    'AffiliateReward',

    # System
    'BatchRun',
    'Notification',

    # Listeners
    'register_all_listeners',
]
