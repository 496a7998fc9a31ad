# finance_system/services/ledger_service.py
"""
Ledger service - the only writer of wallet balances.

Every mutation appends a Transaction and changes Wallet.balance by a SQL
expression in the caller's database transaction, so both commit together
or not at all:

    credit:  UPDATE wallets SET balance = balance + :amount
    debit:   UPDATE wallets SET balance = balance - :amount WHERE balance >= :amount

Invariant: wallet.balance == SUM(completed credits) - SUM(completed debits).
"""
from decimal import Decimal
from typing import Dict, List, Optional, Any, Union
from sqlalchemy import update, func, case, type_coerce
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from config import Config
from models.types import MoneyType
from models.wallet import Wallet
from models.transaction import Transaction
from models.enums import TransactionType, TransactionStatus, TransactionSource
from finance_system.errors import InsufficientFunds, AlreadyProcessed
from finance_system.utils.money import ZERO, parse_amount, quantize_money, to_json_safe
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for wallet balances and the transaction journal."""

    def __init__(self, session: Session):
        self.session = session

    # ═══════════════════════════════════════════════════════════════════
    # WALLETS
    # ═══════════════════════════════════════════════════════════════════

    def _lockWallet(self, userId: int) -> Optional[Wallet]:
        """Load wallet row FOR UPDATE with fresh column values."""
        return self.session.query(Wallet).filter_by(
            userID=userId
        ).with_for_update().populate_existing().first()

    def _insertWalletIfMissing(self, userId: int, currency: str) -> None:
        """
        INSERT ... ON CONFLICT DO NOTHING on the unique userID index.

        Two concurrent first credits both reach this point; exactly one
        row is created and both continue with it.
        """
        now = timeMachine.now
        values = dict(
            userID=userId,
            balance=ZERO,
            currency=currency,
            isActive=True,
            createdAt=now,
            lastUpdated=now
        )
        dialect = self.session.get_bind().dialect.name

        if dialect == 'postgresql':
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == 'sqlite':
            from sqlalchemy.dialects.sqlite import insert
        else:
            # No native upsert: insert under a savepoint, a concurrent winner's row is reused
            try:
                with self.session.begin_nested():
                    self.session.add(Wallet(**values))
            except IntegrityError:
                logger.info(f"Wallet for user {userId} created concurrently, reusing it")
            return

        self.session.execute(
            insert(Wallet).values(**values).on_conflict_do_nothing(index_elements=['userID'])
        )

    def getOrCreateWallet(self, userId: int, currency: Optional[str] = None) -> Wallet:
        """
        Find or create the user's wallet, locked for update.

        Args:
            userId: Owner
            currency: Currency for a new wallet (default from Config)

        Returns:
            Wallet row
        """
        wallet = self._lockWallet(userId)
        if wallet:
            return wallet

        self._insertWalletIfMissing(
            userId,
            currency or Config.get(Config.DEFAULT_CURRENCY, 'USD')
        )
        wallet = self._lockWallet(userId)
        logger.info(f"Wallet ready for user {userId}: walletID={wallet.walletID}")
        return wallet

    def getBalance(self, userId: int) -> Decimal:
        """Current balance, zero when the user has no wallet."""
        balance = self.session.query(Wallet.balance).filter(
            Wallet.userID == userId
        ).scalar()
        return Decimal(str(balance)) if balance is not None else ZERO

    # ═══════════════════════════════════════════════════════════════════
    # MUTATIONS
    # ═══════════════════════════════════════════════════════════════════

    async def credit(
            self,
            userId: int,
            amount: Union[Decimal, int, str],
            source: Union[TransactionSource, str],
            description: str,
            metadata: Optional[Dict[str, Any]] = None,
            reference: Optional[str] = None
    ) -> Transaction:
        """
        Increase balance and append a completed credit.

        Raises:
            InvalidAmount: amount <= 0 or not numeric
            AlreadyProcessed: reference was already posted
        """
        amount = parse_amount(amount)
        source = TransactionSource(source)
        self._ensureReferenceUnused(reference)

        wallet = self.getOrCreateWallet(userId)
        now = timeMachine.now

        self.session.execute(
            update(Wallet)
            .where(Wallet.walletID == wallet.walletID)
            .values(balance=Wallet.balance + amount, lastUpdated=now)
            .execution_options(synchronize_session=False)
        )
        self.session.expire(wallet, ['balance', 'lastUpdated'])

        transaction = self._record(
            wallet, amount, TransactionType.CREDIT, TransactionStatus.COMPLETED,
            source, description, metadata, reference
        )

        logger.info(
            f"Credit: user={userId}, amount={amount}, source={source.value}, "
            f"tx={transaction.transactionID}"
        )
        return transaction

    async def debit(
            self,
            userId: int,
            amount: Union[Decimal, int, str],
            source: Union[TransactionSource, str],
            description: str,
            metadata: Optional[Dict[str, Any]] = None,
            reference: Optional[str] = None
    ) -> Transaction:
        """
        Decrease balance and append a completed debit.

        The balance check and the decrement are one conditional UPDATE;
        when it matches no row nothing is recorded.

        Raises:
            InvalidAmount: amount <= 0 or not numeric
            InsufficientFunds: balance < amount (or no wallet)
            AlreadyProcessed: reference was already posted
        """
        amount = parse_amount(amount)
        source = TransactionSource(source)
        self._ensureReferenceUnused(reference)

        wallet = self._lockWallet(userId)
        if wallet is None:
            raise InsufficientFunds(userId, amount, ZERO)

        now = timeMachine.now
        result = self.session.execute(
            update(Wallet)
            .where(Wallet.walletID == wallet.walletID)
            .where(Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount, lastUpdated=now)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            self.session.expire(wallet, ['balance'])
            logger.warning(
                f"Debit rejected: user={userId}, amount={amount}, balance={wallet.balance}"
            )
            raise InsufficientFunds(userId, amount, wallet.balance)

        self.session.expire(wallet, ['balance', 'lastUpdated'])

        transaction = self._record(
            wallet, amount, TransactionType.DEBIT, TransactionStatus.COMPLETED,
            source, description, metadata, reference
        )

        logger.info(
            f"Debit: user={userId}, amount={amount}, source={source.value}, "
            f"tx={transaction.transactionID}"
        )
        return transaction

    async def recordFailed(
            self,
            userId: int,
            amount: Union[Decimal, int, str],
            source: Union[TransactionSource, str],
            description: str,
            reason: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None,
            transactionType: TransactionType = TransactionType.CREDIT
    ) -> Transaction:
        """
        Append a failed transaction for audit. Balance is not touched.
        """
        amount = parse_amount(amount)
        source = TransactionSource(source)
        wallet = self.getOrCreateWallet(userId)

        meta = dict(metadata or {})
        if reason:
            meta["reason"] = reason

        transaction = self._record(
            wallet, amount, transactionType, TransactionStatus.FAILED,
            source, description, meta
        )

        logger.info(
            f"Failed {transactionType.value} recorded: user={userId}, amount={amount}, "
            f"source={source.value}, reason={reason}"
        )
        return transaction

    def _ensureReferenceUnused(self, reference: Optional[str]) -> None:
        if reference is None:
            return
        exists = self.session.query(Transaction.transactionID).filter(
            Transaction.reference == reference
        ).first()
        if exists:
            raise AlreadyProcessed(f"Ledger reference {reference} already posted")

    def _record(
            self,
            wallet: Wallet,
            amount: Decimal,
            transactionType: TransactionType,
            status: TransactionStatus,
            source: TransactionSource,
            description: str,
            metadata: Optional[Dict[str, Any]],
            reference: Optional[str] = None
    ) -> Transaction:
        transaction = Transaction(
            userID=wallet.userID,
            walletID=wallet.walletID,
            amount=amount,
            type=transactionType.value,
            status=status.value,
            source=source.value,
            description=description,
            meta=to_json_safe(metadata) if metadata else None,
            reference=reference,
            createdAt=timeMachine.now
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction

    # ═══════════════════════════════════════════════════════════════════
    # RECONCILIATION
    # ═══════════════════════════════════════════════════════════════════

    def getJournalSum(self, userId: int) -> Decimal:
        """SUM(completed credits) - SUM(completed debits) for the user."""
        signed = case(
            (Transaction.type == TransactionType.DEBIT.value, -Transaction.amount),
            else_=Transaction.amount
        )
        total = self.session.query(
            type_coerce(func.coalesce(func.sum(signed), 0), MoneyType)
        ).filter(
            Transaction.userID == userId,
            Transaction.status == TransactionStatus.COMPLETED.value
        ).scalar()
        return quantize_money(total)

    def reconcile(self, userId: int) -> Dict[str, Any]:
        """Compare wallet balance with its journal."""
        balance = quantize_money(self.getBalance(userId))
        journal = self.getJournalSum(userId)
        return {
            "userID": userId,
            "balance": balance,
            "journalSum": journal,
            "difference": balance - journal,
            "isConsistent": balance == journal
        }

    def reconcileAll(self) -> List[Dict[str, Any]]:
        """
        Reconcile every wallet.

        Returns:
            Only the inconsistent results
        """
        mismatches = []
        for (userId,) in self.session.query(Wallet.userID).order_by(Wallet.userID).all():
            result = self.reconcile(userId)
            if not result["isConsistent"]:
                logger.error(
                    f"Ledger mismatch for user {userId}: balance={result['balance']}, "
                    f"journal={result['journalSum']}"
                )
                mismatches.append(result)
        return mismatches
