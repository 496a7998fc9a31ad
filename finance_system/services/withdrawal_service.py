# finance_system/services/withdrawal_service.py
"""
Withdrawal service - payout requests and their review.

Mirror of deposit review: approval debits the wallet, rejection records a
failed audit transaction. Funds are not held while a request is pending;
the balance is checked again when the debit happens.
"""
from datetime import datetime
from typing import Dict, Optional, Any
from sqlalchemy.orm import Session
import logging

from config import Config
from models.withdrawal import Withdrawal
from models.enums import WithdrawalStatus, WithdrawalMethod, TransactionSource, TransactionType
from finance_system.errors import AlreadyProcessed, InsufficientFunds, NotFound
from finance_system.services.ledger_service import LedgerService
from finance_system.services import notification_service
from finance_system.services.notification_service import NotificationService
from finance_system.utils.money import parse_amount
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class WithdrawalService:
    """Service for withdrawals."""

    def __init__(self, session: Session, ledger: Optional[LedgerService] = None):
        self.session = session
        self.ledger = ledger or LedgerService(session)
        self.notifications = NotificationService(session)

    @staticmethod
    def _validateDestination(
            method: WithdrawalMethod,
            walletAddress: Optional[str],
            bankDetails: Optional[Dict[str, Any]]
    ) -> None:
        if method.isCrypto and not (walletAddress and walletAddress.strip()):
            raise ValueError(f"Wallet address is required for {method.value} withdrawals")
        if method is WithdrawalMethod.BANK_TRANSFER and not bankDetails:
            raise ValueError("Bank details are required for bank transfers")

    async def requestWithdrawal(
            self,
            userId: int,
            amount,
            paymentMethod: str,
            walletAddress: Optional[str] = None,
            bankDetails: Optional[Dict[str, Any]] = None,
            currency: Optional[str] = None
    ) -> Withdrawal:
        """
        Create a pending withdrawal.

        Raises:
            InvalidAmount: amount <= 0
            InsufficientFunds: amount > current balance
            ValueError: Unknown method or missing destination
        """
        amount = parse_amount(amount)

        try:
            method = WithdrawalMethod(paymentMethod)
        except ValueError:
            raise ValueError(f"Unsupported payment method: {paymentMethod}")

        self._validateDestination(method, walletAddress, bankDetails)

        balance = self.ledger.getBalance(userId)
        if balance < amount:
            raise InsufficientFunds(userId, amount, balance)

        withdrawal = Withdrawal(
            userID=userId,
            amount=amount,
            currency=currency or Config.get(Config.DEFAULT_CURRENCY, 'USD'),
            status=WithdrawalStatus.PENDING.value,
            paymentMethod=method.value,
            walletAddress=walletAddress if method.isCrypto else None,
            bankDetails=bankDetails if method is WithdrawalMethod.BANK_TRANSFER else None
        )
        self.session.add(withdrawal)
        self.session.flush()

        logger.info(
            f"Withdrawal {withdrawal.withdrawalID} requested: user={userId}, "
            f"amount={amount}, method={method.value}"
        )
        return withdrawal

    def _lockPendingWithdrawal(self, withdrawalId: int) -> Withdrawal:
        withdrawal = self.session.query(Withdrawal).filter_by(
            withdrawalID=withdrawalId
        ).with_for_update().populate_existing().first()

        if not withdrawal:
            raise NotFound(f"Withdrawal {withdrawalId} not found")

        if withdrawal.status != WithdrawalStatus.PENDING.value:
            raise AlreadyProcessed(f"Withdrawal {withdrawalId} already {withdrawal.status}")

        return withdrawal

    async def approveWithdrawal(
            self,
            withdrawalId: int,
            processorId: int,
            payoutRef: Optional[str] = None,
            notes: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Debit the wallet and mark the withdrawal approved.

        Raises:
            NotFound: Unknown withdrawal
            AlreadyProcessed: Withdrawal is not pending
            InsufficientFunds: Balance dropped below the amount; request stays pending
        """
        now = now or timeMachine.now
        withdrawal = self._lockPendingWithdrawal(withdrawalId)

        transaction = await self.ledger.debit(
            withdrawal.userID,
            withdrawal.amount,
            TransactionSource.WITHDRAWAL,
            f"Withdrawal via {withdrawal.paymentMethod}",
            metadata={
                "withdrawalID": withdrawal.withdrawalID,
                "processedBy": processorId,
                "payoutRef": payoutRef,
            },
            reference=f"withdrawal:{withdrawal.withdrawalID}"
        )

        withdrawal.status = WithdrawalStatus.APPROVED.value
        withdrawal.processedBy = processorId
        withdrawal.processedAt = now
        withdrawal.payoutRef = payoutRef
        if notes:
            withdrawal.adminNotes = notes
        self.session.flush()

        self.notifications.enqueue(
            withdrawal.userID,
            notification_service.WITHDRAWAL_APPROVED,
            {
                "amount": withdrawal.amount,
                "currency": withdrawal.currency,
                "paymentMethod": withdrawal.paymentMethod,
            }
        )

        logger.info(f"Withdrawal {withdrawalId} approved by {processorId}: amount={withdrawal.amount}")
        return {"withdrawal": withdrawal, "transaction": transaction}

    async def rejectWithdrawal(
            self,
            withdrawalId: int,
            processorId: int,
            notes: str,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Reject a pending withdrawal; balance is untouched.

        Raises:
            NotFound: Unknown withdrawal
            AlreadyProcessed: Withdrawal is not pending
        """
        now = now or timeMachine.now
        withdrawal = self._lockPendingWithdrawal(withdrawalId)

        withdrawal.status = WithdrawalStatus.REJECTED.value
        withdrawal.processedBy = processorId
        withdrawal.processedAt = now
        withdrawal.adminNotes = notes

        transaction = await self.ledger.recordFailed(
            withdrawal.userID,
            withdrawal.amount,
            TransactionSource.WITHDRAWAL,
            "Withdrawal rejected",
            reason=notes,
            metadata={"withdrawalID": withdrawal.withdrawalID, "processedBy": processorId},
            transactionType=TransactionType.DEBIT
        )

        self.notifications.enqueue(
            withdrawal.userID,
            notification_service.WITHDRAWAL_REJECTED,
            {
                "amount": withdrawal.amount,
                "currency": withdrawal.currency,
                "reason": notes or "",
            }
        )

        logger.info(f"Withdrawal {withdrawalId} rejected by {processorId}: {notes}")
        return {"withdrawal": withdrawal, "transaction": transaction}
