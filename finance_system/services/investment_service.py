# finance_system/services/investment_service.py
"""
Investment service - deposit review and the investment lifecycle.

States:
    Deposit:    pending → approved | rejected            (terminal)
    Investment: active  → completed | terminated         (terminal)

Approval creates exactly one investment, one ledger credit for the deposit
amount and one debit moving that amount into the investment. Daily accrual
credits profit at most once per business day and at most durationInDays
times per investment.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional, Any
from sqlalchemy import update
from sqlalchemy.orm import Session
import logging

from config import Config
from models.user import User
from models.deposit import Deposit
from models.investment import Investment
from models.investment_plan import InvestmentPlan
from models.enums import DepositStatus, InvestmentStatus, TransactionSource
from finance_system.errors import (
    AlreadyProcessed,
    BatchItemFailed,
    InvalidAmount,
    NotFound,
    PlanUnavailable,
)
from finance_system.services.ledger_service import LedgerService
from finance_system.services.commission_service import CommissionService
from finance_system.services.account_service import AccountService
from finance_system.services import notification_service
from finance_system.services.notification_service import NotificationService
from finance_system.utils.money import ZERO, HUNDRED, parse_amount, quantize_money, to_decimal
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class InvestmentService:
    """Service for deposits and investments."""

    def __init__(
            self,
            session: Session,
            ledger: Optional[LedgerService] = None,
            commissions: Optional[CommissionService] = None
    ):
        self.session = session
        self.ledger = ledger or LedgerService(session)
        self.commissions = commissions or CommissionService(session, self.ledger)
        self.accounts = AccountService(session)
        self.notifications = NotificationService(session)

    # ═══════════════════════════════════════════════════════════════════
    # PROFIT MATH
    # ═══════════════════════════════════════════════════════════════════

    @staticmethod
    def calculateTotalReturn(investment: Investment, plan: InvestmentPlan) -> Optional[Decimal]:
        """Full profit of a fixed-deposit investment, None for running yield."""
        if not plan.isFixedDeposit:
            return None
        return quantize_money(
            to_decimal(investment.initialAmount) * to_decimal(plan.returnRate or 0) / HUNDRED
        )

    @staticmethod
    def calculateDailyProfit(investment: Investment, plan: InvestmentPlan) -> Decimal:
        """
        One day of profit.

        Fixed deposit:  initialAmount * returnRate / 100 / durationInDays
        Running yield:  amount * dailyIncome / 100
        """
        if plan.isFixedDeposit:
            total = to_decimal(investment.initialAmount) * to_decimal(plan.returnRate or 0) / HUNDRED
            return quantize_money(total / plan.durationInDays)
        return quantize_money(
            to_decimal(investment.amount) * to_decimal(plan.dailyIncome or 0) / HUNDRED
        )

    # ═══════════════════════════════════════════════════════════════════
    # DEPOSITS
    # ═══════════════════════════════════════════════════════════════════

    async def createDeposit(
            self,
            userId: int,
            amount,
            paymentMethod: str,
            evidenceUrl: str,
            transactionRef: Optional[str] = None,
            currency: Optional[str] = None
    ) -> Deposit:
        """
        Register a deposit request for review.

        Raises:
            InvalidAmount: amount <= 0
            NotFound: Unknown user
            ValueError: Missing payment method or evidence
        """
        amount = parse_amount(amount)
        if not paymentMethod:
            raise ValueError("Payment method is required")
        if not evidenceUrl:
            raise ValueError("Payment evidence is required")
        if not self.session.get(User, userId):
            raise NotFound(f"User {userId} not found")

        deposit = Deposit(
            userID=userId,
            amount=amount,
            currency=currency or Config.get(Config.DEFAULT_CURRENCY, 'USD'),
            paymentMethod=paymentMethod,
            evidenceUrl=evidenceUrl,
            transactionRef=transactionRef,
            status=DepositStatus.PENDING.value
        )
        self.session.add(deposit)
        self.session.flush()

        logger.info(f"Deposit {deposit.depositID} created: user={userId}, amount={amount}")
        return deposit

    def _lockPendingDeposit(self, depositId: int) -> Deposit:
        deposit = self.session.query(Deposit).filter_by(
            depositID=depositId
        ).with_for_update().populate_existing().first()

        if not deposit:
            raise NotFound(f"Deposit {depositId} not found")

        if deposit.status != DepositStatus.PENDING.value:
            raise AlreadyProcessed(f"Deposit {depositId} already {deposit.status}")

        return deposit

    def _claimFirstPurchase(self, userId: int) -> bool:
        """
        Atomically flip users.hasInvested false → true.

        Returns:
            True for exactly one caller per user
        """
        result = self.session.execute(
            update(User)
            .where(User.userID == userId)
            .where(User.hasInvested.is_(False))
            .values(hasInvested=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def approveDeposit(
            self,
            depositId: int,
            planId: int,
            reviewerId: int,
            notes: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Approve a pending deposit into an investment.

        Everything happens in the caller's transaction; on any error the
        caller rolls back and the deposit stays pending.

        Raises:
            NotFound: Unknown deposit or plan
            AlreadyProcessed: Deposit is not pending
            PlanUnavailable: Plan is deactivated
            InvalidAmount: Deposit amount outside plan bounds
        """
        now = now or timeMachine.now
        deposit = self._lockPendingDeposit(depositId)

        plan = self.session.get(InvestmentPlan, planId)
        if not plan:
            raise NotFound(f"Investment plan {planId} not found")
        if not plan.isActive:
            raise PlanUnavailable(f"Investment plan {plan.name} is not active")

        amount = quantize_money(deposit.amount)
        if not plan.acceptsAmount(amount):
            raise InvalidAmount(
                f"Amount {amount} outside plan {plan.name} bounds "
                f"({plan.minAmount} - {plan.maxAmount or 'unlimited'})"
            )

        # Lock the owner for the level / first purchase updates
        self.accounts.getUser(deposit.userID, forUpdate=True)
        isFirstPurchase = self._claimFirstPurchase(deposit.userID)

        deposit.status = DepositStatus.APPROVED.value
        deposit.assignedPlanID = plan.planID
        deposit.reviewedBy = reviewerId
        deposit.reviewedAt = now
        if notes:
            deposit.adminNotes = notes

        investment = Investment(
            userID=deposit.userID,
            planID=plan.planID,
            depositID=deposit.depositID,
            amount=amount,
            initialAmount=amount,
            profit=ZERO,
            status=InvestmentStatus.ACTIVE.value,
            startDate=now,
            endDate=now + timedelta(days=plan.durationInDays),
            daysAccrued=0,
            isFirstPurchase=isFirstPurchase
        )
        self.session.add(investment)
        self.session.flush()

        levelRaised = self.accounts.raiseLevel(deposit.userID, plan.minLevel)

        transaction = await self.ledger.credit(
            deposit.userID,
            amount,
            TransactionSource.DEPOSIT,
            f"Deposit approved for investment in {plan.name}",
            metadata={
                "depositID": deposit.depositID,
                "investmentID": investment.investmentID,
                "planID": plan.planID,
                "reviewedBy": reviewerId,
            },
            reference=f"deposit:{deposit.depositID}"
        )

        # Principal moves from the wallet into the investment; it comes back
        # through principal_return (fixed deposit) or daily income (running yield)
        allocation = await self.ledger.debit(
            deposit.userID,
            amount,
            TransactionSource.OTHER,
            f"Principal allocated to {plan.name}",
            metadata={
                "purpose": "principal_allocation",
                "depositID": deposit.depositID,
                "investmentID": investment.investmentID,
            },
            reference=f"allocation:{investment.investmentID}"
        )

        commission = None
        if isFirstPurchase:
            commission = await self.commissions.processFirstPurchaseCommission(investment, now)

        self.notifications.enqueue(
            deposit.userID,
            notification_service.DEPOSIT_APPROVED,
            {
                "amount": amount,
                "currency": deposit.currency,
                "planName": plan.name,
                "endDate": investment.endDate.date(),
            }
        )

        logger.info(
            f"Deposit {depositId} approved by {reviewerId}: investment={investment.investmentID}, "
            f"plan={plan.name}, amount={amount}, firstPurchase={isFirstPurchase}, "
            f"levelRaised={levelRaised}"
        )

        return {
            "deposit": deposit,
            "investment": investment,
            "transaction": transaction,
            "allocation": allocation,
            "commission": commission,
            "isFirstPurchase": isFirstPurchase,
        }

    async def rejectDeposit(
            self,
            depositId: int,
            reviewerId: int,
            notes: str,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Reject a pending deposit. Balance is untouched; one failed
        transaction is recorded for audit.

        Raises:
            NotFound: Unknown deposit
            AlreadyProcessed: Deposit is not pending
        """
        now = now or timeMachine.now
        deposit = self._lockPendingDeposit(depositId)

        deposit.status = DepositStatus.REJECTED.value
        deposit.reviewedBy = reviewerId
        deposit.reviewedAt = now
        deposit.adminNotes = notes

        transaction = await self.ledger.recordFailed(
            deposit.userID,
            deposit.amount,
            TransactionSource.DEPOSIT,
            "Deposit rejected",
            reason=notes,
            metadata={"depositID": deposit.depositID, "reviewedBy": reviewerId}
        )

        self.notifications.enqueue(
            deposit.userID,
            notification_service.DEPOSIT_REJECTED,
            {
                "amount": deposit.amount,
                "currency": deposit.currency,
                "reason": notes or "",
            }
        )

        logger.info(f"Deposit {depositId} rejected by {reviewerId}: {notes}")
        return {"deposit": deposit, "transaction": transaction}

    # ═══════════════════════════════════════════════════════════════════
    # INVESTMENT LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════

    async def terminateInvestment(
            self,
            investmentId: int,
            reviewerId: int,
            reason: str,
            now: Optional[datetime] = None
    ) -> Investment:
        """
        Stop an active investment. No further profit, no principal movement.

        Raises:
            NotFound: Unknown investment
            AlreadyProcessed: Investment is not active
        """
        now = now or timeMachine.now
        investment = self.session.query(Investment).filter_by(
            investmentID=investmentId
        ).with_for_update().populate_existing().first()

        if not investment:
            raise NotFound(f"Investment {investmentId} not found")
        if investment.status != InvestmentStatus.ACTIVE.value:
            raise AlreadyProcessed(f"Investment {investmentId} already {investment.status}")

        investment.status = InvestmentStatus.TERMINATED.value
        investment.terminatedAt = now
        investment.terminatedBy = reviewerId
        investment.terminationReason = reason
        self.session.flush()

        logger.warning(f"Investment {investmentId} terminated by {reviewerId}: {reason}")
        return investment

    async def accrueDailyProfit(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Daily batch over active investments.

        One commit per investment; a failing investment is rolled back and
        reported, the rest continue.

        Returns:
            Summary dict
        """
        now = now or timeMachine.now
        today = timeMachine.localDate(now)

        investmentIds = [
            row[0] for row in self.session.query(Investment.investmentID).filter(
                Investment.status == InvestmentStatus.ACTIVE.value
            ).order_by(Investment.investmentID).all()
        ]

        summary = {
            "date": today,
            "processed": len(investmentIds),
            "accrued": 0,
            "totalProfit": ZERO,
            "completed": 0,
            "principalReturned": ZERO,
            "skipped": 0,
            "errors": [],
        }

        logger.info(f"Daily profit accrual for {today}: {len(investmentIds)} active investments")

        for investmentId in investmentIds:
            try:
                result = await self._processInvestment(investmentId, now, today)
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                failure = BatchItemFailed(investmentId, str(e), itemType="investment")
                logger.error(f"Profit accrual failed: {failure}", exc_info=True)
                summary["errors"].append(failure.asDict())
                continue

            if result["profit"] > ZERO:
                summary["accrued"] += 1
                summary["totalProfit"] += result["profit"]
            if result["completed"]:
                summary["completed"] += 1
                summary["principalReturned"] += result["principalReturned"]
            if result["profit"] == ZERO and not result["completed"]:
                summary["skipped"] += 1

        logger.info(
            f"Daily profit accrual done for {today}: accrued={summary['accrued']}, "
            f"total={summary['totalProfit']}, completed={summary['completed']}, "
            f"errors={len(summary['errors'])}"
        )
        return summary

    def _canAccrue(self, investment: Investment, plan: InvestmentPlan, today: date) -> bool:
        if investment.lastProfitDate == today:
            return False
        if (investment.daysAccrued or 0) >= plan.durationInDays:
            return False
        return True

    async def _processInvestment(
            self,
            investmentId: int,
            now: datetime,
            today: date
    ) -> Dict[str, Any]:
        """Accrue one day of profit, then complete if the end date passed."""
        result = {"profit": ZERO, "completed": False, "principalReturned": ZERO}

        investment = self.session.query(Investment).filter_by(
            investmentID=investmentId
        ).with_for_update().populate_existing().first()

        if not investment or investment.status != InvestmentStatus.ACTIVE.value:
            return result

        plan = investment.plan

        if self._canAccrue(investment, plan, today):
            profit = self.calculateDailyProfit(investment, plan)

            totalReturn = self.calculateTotalReturn(investment, plan)
            if totalReturn is not None:
                remaining = totalReturn - to_decimal(investment.profit or 0)
                # Last day pays the rounding remainder
                if (investment.daysAccrued or 0) + 1 >= plan.durationInDays:
                    profit = remaining
                else:
                    profit = min(profit, remaining)

            if profit > ZERO:
                await self.ledger.credit(
                    investment.userID,
                    profit,
                    TransactionSource.INVESTMENT_PROFIT,
                    f"Daily profit from {plan.name}",
                    metadata={
                        "investmentID": investment.investmentID,
                        "profitDate": today,
                        "day": (investment.daysAccrued or 0) + 1,
                    },
                    reference=f"profit:{investment.investmentID}:{today.isoformat()}"
                )
                investment.profit = to_decimal(investment.profit or 0) + profit
                investment.lastProfitDate = today
                investment.daysAccrued = (investment.daysAccrued or 0) + 1
                result["profit"] = profit

        if investment.endDate <= now:
            investment.status = InvestmentStatus.COMPLETED.value
            investment.completedAt = now

            if plan.isFixedDeposit:
                await self.ledger.credit(
                    investment.userID,
                    investment.initialAmount,
                    TransactionSource.PRINCIPAL_RETURN,
                    f"Principal returned from {plan.name}",
                    metadata={"investmentID": investment.investmentID},
                    reference=f"principal:{investment.investmentID}"
                )
                result["principalReturned"] = quantize_money(investment.initialAmount)

            self.notifications.enqueue(
                investment.userID,
                notification_service.INVESTMENT_COMPLETED,
                {
                    "planName": plan.name,
                    "amount": investment.initialAmount,
                    "profit": investment.profit,
                }
            )
            result["completed"] = True
            logger.info(
                f"Investment {investment.investmentID} completed: profit={investment.profit}"
            )

        self.session.flush()
        return result
