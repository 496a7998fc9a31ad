# models/listeners/ledger_listeners.py
"""
Ledger Event Listeners - guard the journal and the balances derived from it.

Architecture:
    Transaction (completed)  → never UPDATEd in money fields, never DELETEd
    Wallet.balance           → changed only by LedgerService SQL increments
    User.referrerID          → assigned once

NOTE: LedgerService updates balances with UPDATE ... SET balance = balance + x,
      which bypasses attribute events. A 'set' event on Wallet.balance therefore
      always means somebody assigned the balance directly.
"""
import logging
import traceback

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import base as orm_base

logger = logging.getLogger(__name__)

# Fields that define the money movement of a journal row
PROTECTED_TRANSACTION_FIELDS = ('amount', 'type', 'status', 'source', 'userID', 'walletID')

_UNSET = (None, orm_base.NO_VALUE, orm_base.NEVER_SET)


def _persisted_status(target, connection) -> str:
    """Status as stored in the database, before any pending change."""
    state = inspect(target)
    history = state.attrs.status.history
    if history.deleted:
        return history.deleted[0]
    if history.added or 'status' in state.unloaded:
        # Expired before the change: the old value is only in the row
        table = target.__table__
        return connection.execute(
            select(table.c.status).where(table.c.transactionID == state.identity[0])
        ).scalar()
    return target.status


def register_journal_protection():
    """
    Forbid edits of money fields and deletes of completed transactions.

    Called once during application startup from models/listeners/__init__.py
    """
    from models.transaction import Transaction
    from finance_system.errors import ImmutableTransactionError

    def protect_completed_update(mapper, connection, target):
        """Completed rows may only change description/metadata."""
        if _persisted_status(target, connection) != 'completed':
            return

        state = inspect(target)
        changed = [
            name for name in PROTECTED_TRANSACTION_FIELDS
            if state.attrs[name].history.has_changes()
        ]
        if changed:
            raise ImmutableTransactionError(
                f"Transaction {target.transactionID} is completed, "
                f"cannot change: {', '.join(changed)}"
            )

    def protect_completed_delete(mapper, connection, target):
        if _persisted_status(target, connection) == 'completed':
            raise ImmutableTransactionError(
                f"Transaction {target.transactionID} is completed and cannot be deleted"
            )

    event.listen(Transaction, 'before_update', protect_completed_update)
    event.listen(Transaction, 'before_delete', protect_completed_delete)


# =========================================================================
# SAFETY: Prevent direct balance modification
# =========================================================================

def register_balance_protection():
    """
    Log warnings when Wallet.balance is modified directly.

    Direct assignment skips the journal, so the wallet would drift from
    SUM(transactions).
    """
    from models.wallet import Wallet

    @event.listens_for(Wallet.balance, 'set')
    def warn_direct_balance_set(target, value, oldvalue, initiator):
        """Warn when balance is set directly (not via LedgerService)."""
        if oldvalue not in _UNSET and value != oldvalue:
            stack = ''.join(traceback.format_stack()[-5:-1])

            logger.warning(
                f"DIRECT balance modification detected! "
                f"wallet={target.walletID}, user={target.userID}, {oldvalue} → {value}\n"
                f"Stack:\n{stack}"
            )


def register_referrer_protection():
    """Raise when an already assigned referrer is replaced."""
    from models.user import User
    from finance_system.errors import ReferrerAlreadyAssigned

    @event.listens_for(User.referrerID, 'set')
    def forbid_referrer_change(target, value, oldvalue, initiator):
        if oldvalue not in _UNSET and value != oldvalue:
            raise ReferrerAlreadyAssigned(
                f"User {target.userID} already has referrer {oldvalue}"
            )
