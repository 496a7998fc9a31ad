# investo/models/enums.py
"""
String enumerations stored in status/type columns.

Columns are plain strings; always persist and compare with ``.value``.
"""
from enum import Enum


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionSource(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TASK_REWARD = "task_reward"
    REFERRAL = "referral"
    BONUS = "bonus"
    INVESTMENT_PROFIT = "investment_profit"
    PRINCIPAL_RETURN = "principal_return"
    OTHER = "other"


class DepositStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalMethod(str, Enum):
    BITCOIN = "bitcoin"
    ETHEREUM = "ethereum"
    LITECOIN = "litecoin"
    BANK_TRANSFER = "bank_transfer"

    @property
    def isCrypto(self) -> bool:
        return self is not WithdrawalMethod.BANK_TRANSFER


class InvestmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class RewardType(str, Enum):
    DAILY = "daily"
    FIRST_PURCHASE = "first_purchase"


class RewardStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
