# finance_system/errors.py
"""
Domain errors of the finance core.

Mutation errors propagate to the caller with nothing persisted. Batch jobs
never raise per-item errors; they collect them as BatchItemFailed entries.
"""
from typing import Any, Dict, Optional


class FinanceError(Exception):
    """Base class for all finance core errors."""
    pass


class InvalidAmount(FinanceError):
    """Amount is not a positive finite number, or outside plan bounds."""
    pass


class InsufficientFunds(FinanceError):
    """Debit would take the balance below zero."""

    def __init__(self, userId: int, requested, available=None):
        self.userId = userId
        self.requested = requested
        self.available = available
        message = f"Insufficient funds for user {userId}: requested {requested}"
        if available is not None:
            message += f", available {available}"
        super().__init__(message)


class AlreadyProcessed(FinanceError):
    """Deposit/withdrawal is no longer pending, or the reference was already posted."""
    pass


class NotFound(FinanceError):
    """Referenced entity does not exist."""
    pass


class PlanUnavailable(FinanceError):
    """Plan exists but is deactivated."""
    pass


class RateNotConfigured(FinanceError):
    """Commission rate table has no cell for the level pair."""

    def __init__(self, referrerLevel: int, referralLevel: int):
        self.referrerLevel = referrerLevel
        self.referralLevel = referralLevel
        super().__init__(
            f"No commission rate for referrer level {referrerLevel} / referral level {referralLevel}"
        )


class ClockDegraded(FinanceError):
    """No trusted time source reachable, local clock in use."""
    pass


class InvalidLevel(FinanceError):
    """Affiliate level outside 1..4."""
    pass


class ReferrerAlreadyAssigned(FinanceError):
    """Referrer can only be set once."""
    pass


class ImmutableTransactionError(FinanceError):
    """Attempt to edit or delete a completed ledger transaction."""
    pass


class BatchItemFailed(FinanceError):
    """One item of a batch job failed; collected, never raised out of a batch."""

    def __init__(self, itemId: Any, reason: str, itemType: Optional[str] = None):
        self.itemId = itemId
        self.reason = reason
        self.itemType = itemType
        super().__init__(f"{itemType or 'item'} {itemId} failed: {reason}")

    def asDict(self) -> Dict[str, Any]:
        return {"itemId": self.itemId, "itemType": self.itemType, "reason": self.reason}
