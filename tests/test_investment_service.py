# tests/test_investment_service.py
"""
Tests for InvestmentService: deposit review and the investment lifecycle.

Run:
    pytest tests/test_investment_service.py -v
"""
from decimal import Decimal

import pytest

from models import AffiliateReward, Deposit, Investment, Notification, Transaction, User
from models.enums import (
    DepositStatus,
    InvestmentStatus,
    RewardType,
    TransactionSource,
    TransactionStatus,
)
from finance_system.errors import AlreadyProcessed, InvalidAmount, NotFound, PlanUnavailable
from finance_system.services.investment_service import InvestmentService


# =============================================================================
# TEST CLASS: approval
# =============================================================================

class TestApproveDeposit:

    @pytest.mark.asyncio
    async def test_approve_creates_investment_and_moves_principal(
            self, session, make_user, make_plan, make_deposit, balance_of, calc_journal_sum):
        user = make_user()
        plan = make_plan(minLevel=2)
        deposit = make_deposit(user, "100")

        result = await InvestmentService(session).approveDeposit(deposit.depositID, plan.planID, reviewerId=1)
        session.commit()

        investment = result["investment"]
        assert result["deposit"].status == DepositStatus.APPROVED.value
        assert result["deposit"].assignedPlanID == plan.planID
        assert investment.status == InvestmentStatus.ACTIVE.value
        assert investment.amount == Decimal("100")
        assert investment.depositID == deposit.depositID
        assert result["isFirstPurchase"] is True

        # credit for the deposit, debit into the investment
        assert result["transaction"].source == TransactionSource.DEPOSIT.value
        assert result["transaction"].reference == f"deposit:{deposit.depositID}"
        assert result["allocation"].reference == f"allocation:{investment.investmentID}"
        assert balance_of(user) == Decimal("0")
        assert calc_journal_sum(user.userID) == Decimal("0")

        refreshed = session.get(User, user.userID)
        assert refreshed.level == 2
        assert refreshed.hasInvested is True

        assert session.query(Notification).filter_by(
            userID=user.userID, template="deposit_approved"
        ).count() == 1

    @pytest.mark.asyncio
    async def test_second_approval_rejected(self, session, make_user, make_plan, make_deposit):
        user = make_user()
        plan = make_plan()
        deposit = make_deposit(user, "100")
        service = InvestmentService(session)

        await service.approveDeposit(deposit.depositID, plan.planID, reviewerId=1)
        session.commit()

        with pytest.raises(AlreadyProcessed):
            await service.approveDeposit(deposit.depositID, plan.planID, reviewerId=1)
        session.rollback()

        assert session.query(Investment).filter_by(depositID=deposit.depositID).count() == 1
        assert session.query(Transaction).filter_by(
            reference=f"deposit:{deposit.depositID}"
        ).count() == 1

    @pytest.mark.asyncio
    async def test_unknown_deposit(self, session, make_plan):
        plan = make_plan()
        with pytest.raises(NotFound):
            await InvestmentService(session).approveDeposit(999, plan.planID, reviewerId=1)

    @pytest.mark.asyncio
    async def test_inactive_plan(self, session, make_user, make_plan, make_deposit):
        user = make_user()
        plan = make_plan(isActive=False)
        deposit = make_deposit(user, "100")
        session.commit()
        depositId = deposit.depositID

        with pytest.raises(PlanUnavailable):
            await InvestmentService(session).approveDeposit(depositId, plan.planID, reviewerId=1)
        session.rollback()

        assert session.get(Deposit, depositId).status == DepositStatus.PENDING.value
        assert session.query(Transaction).count() == 0

    @pytest.mark.asyncio
    async def test_amount_outside_plan_bounds(self, session, make_user, make_plan, make_deposit):
        user = make_user()
        plan = make_plan(minAmount=Decimal("200"), maxAmount=Decimal("499"))
        deposit = make_deposit(user, "100")

        with pytest.raises(InvalidAmount):
            await InvestmentService(session).approveDeposit(deposit.depositID, plan.planID, reviewerId=1)

    @pytest.mark.asyncio
    async def test_level_never_lowered(self, session, make_user, make_plan, make_deposit):
        user = make_user(level=3)
        plan = make_plan(minLevel=1)
        deposit = make_deposit(user, "50")

        await InvestmentService(session).approveDeposit(deposit.depositID, plan.planID, reviewerId=1)
        session.commit()

        assert session.get(User, user.userID).level == 3

    @pytest.mark.asyncio
    async def test_only_first_approval_is_first_purchase(self, session, make_user, make_plan, make_deposit):
        user = make_user()
        plan = make_plan()
        first = make_deposit(user, "10")
        second = make_deposit(user, "20")
        service = InvestmentService(session)

        resultFirst = await service.approveDeposit(first.depositID, plan.planID, reviewerId=1)
        resultSecond = await service.approveDeposit(second.depositID, plan.planID, reviewerId=1)

        assert resultFirst["isFirstPurchase"] is True
        assert resultSecond["isFirstPurchase"] is False


# =============================================================================
# TEST CLASS: first purchase commission
# =============================================================================

class TestFirstPurchaseCommission:

    @pytest.mark.asyncio
    async def test_referrer_paid_on_first_purchase(
            self, session, make_user, make_plan, make_deposit, balance_of):
        referrer = make_user(level=2)
        buyer = make_user(referrer=referrer)
        plan = make_plan(minLevel=1)
        deposit = make_deposit(buyer, "100")

        result = await InvestmentService(session).approveDeposit(deposit.depositID, plan.planID, reviewerId=1)
        session.commit()

        # [referrer level 2][plan level 1] = 3%
        assert result["commission"]["amount"] == Decimal("3")
        assert balance_of(referrer) == Decimal("3")
        assert session.get(User, referrer.userID).affiliateEarnings == Decimal("3")

        reward = session.query(AffiliateReward).filter_by(referrerID=referrer.userID).one()
        assert reward.rewardType == RewardType.FIRST_PURCHASE.value
        assert reward.investmentID == result["investment"].investmentID

    @pytest.mark.asyncio
    async def test_no_commission_on_repeat_purchase(
            self, session, make_user, make_plan, make_deposit, balance_of):
        referrer = make_user(level=2)
        buyer = make_user(referrer=referrer)
        plan = make_plan(minLevel=1)
        first = make_deposit(buyer, "100")
        second = make_deposit(buyer, "100")
        service = InvestmentService(session)

        await service.approveDeposit(first.depositID, plan.planID, reviewerId=1)
        result = await service.approveDeposit(second.depositID, plan.planID, reviewerId=1)
        session.commit()

        assert result["commission"] is None
        assert balance_of(referrer) == Decimal("3")

    @pytest.mark.asyncio
    async def test_referrer_outside_program_not_paid(
            self, session, make_user, make_plan, make_deposit, balance_of):
        referrer = make_user(level=0)
        buyer = make_user(referrer=referrer)
        plan = make_plan()
        deposit = make_deposit(buyer, "100")

        result = await InvestmentService(session).approveDeposit(deposit.depositID, plan.planID, reviewerId=1)

        assert result["commission"] is None
        assert balance_of(referrer) == Decimal("0")


# =============================================================================
# TEST CLASS: rejection
# =============================================================================

class TestRejectDeposit:

    @pytest.mark.asyncio
    async def test_reject_records_failed_transaction(self, session, make_user, make_deposit, balance_of):
        user = make_user()
        deposit = make_deposit(user, "50")

        result = await InvestmentService(session).rejectDeposit(deposit.depositID, reviewerId=1, notes="No proof")
        session.commit()

        assert result["deposit"].status == DepositStatus.REJECTED.value
        assert result["deposit"].adminNotes == "No proof"
        assert result["transaction"].status == TransactionStatus.FAILED.value
        assert result["transaction"].amount == Decimal("50")
        assert balance_of(user) == Decimal("0")
        assert session.query(Investment).count() == 0
        assert session.query(Notification).filter_by(template="deposit_rejected").count() == 1

    @pytest.mark.asyncio
    async def test_reject_after_approval(self, session, make_user, make_plan, make_deposit):
        user = make_user()
        plan = make_plan()
        deposit = make_deposit(user, "50")
        service = InvestmentService(session)
        await service.approveDeposit(deposit.depositID, plan.planID, reviewerId=1)

        with pytest.raises(AlreadyProcessed):
            await service.rejectDeposit(deposit.depositID, reviewerId=1, notes="Too late")


# =============================================================================
# TEST CLASS: daily accrual
# =============================================================================

class TestDailyAccrual:

    @pytest.mark.asyncio
    async def test_fixed_deposit_full_lifecycle(
            self, session, make_user, make_plan, make_deposit, balance_of, calc_journal_sum, day):
        """
        TEST: 100 at 15% over 30 days.

        Verify: 0.50 per day, 15.00 profit, principal back in its own
        transaction, wallet up 115.00 over the investment's life.
        """
        user = make_user()
        plan = make_plan(isFixedDeposit=True, returnRate=Decimal("15"), dailyIncome=None, durationInDays=30)
        deposit = make_deposit(user, "100")
        service = InvestmentService(session)

        result = await service.approveDeposit(deposit.depositID, plan.planID, reviewerId=1, now=day(0))
        session.commit()
        investmentId = result["investment"].investmentID

        for n in range(30):
            summary = await service.accrueDailyProfit(now=day(n))
            assert summary["accrued"] == 1
            assert summary["totalProfit"] == Decimal("0.5")
            assert summary["completed"] == 0

        summary = await service.accrueDailyProfit(now=day(30))
        assert summary["accrued"] == 0
        assert summary["completed"] == 1
        assert summary["principalReturned"] == Decimal("100")

        investment = session.get(Investment, investmentId)
        assert investment.status == InvestmentStatus.COMPLETED.value
        assert investment.profit == Decimal("15")
        assert investment.daysAccrued == 30

        principal = session.query(Transaction).filter_by(reference=f"principal:{investmentId}").one()
        assert principal.source == TransactionSource.PRINCIPAL_RETURN.value
        assert principal.amount == Decimal("100")

        assert balance_of(user) == Decimal("115")
        assert calc_journal_sum(user.userID) == Decimal("115")

        # Nothing more after completion
        summary = await service.accrueDailyProfit(now=day(31))
        assert summary["processed"] == 0
        assert balance_of(user) == Decimal("115")

    @pytest.mark.asyncio
    async def test_running_yield_pays_daily_income(
            self, session, make_user, make_plan, make_deposit, balance_of, day):
        user = make_user()
        plan = make_plan(dailyIncome=Decimal("2"), durationInDays=3)
        deposit = make_deposit(user, "100")
        service = InvestmentService(session)
        await service.approveDeposit(deposit.depositID, plan.planID, reviewerId=1, now=day(0))
        session.commit()

        for n in range(3):
            await service.accrueDailyProfit(now=day(n))
        summary = await service.accrueDailyProfit(now=day(3))

        assert summary["completed"] == 1
        assert summary["principalReturned"] == Decimal("0")
        assert balance_of(user) == Decimal("6")

    @pytest.mark.asyncio
    async def test_same_day_rerun_pays_once(
            self, session, make_user, make_plan, make_investment, balance_of, day):
        user = make_user()
        plan = make_plan(dailyIncome=Decimal("1"))
        make_investment(user, plan, "200")
        session.commit()
        service = InvestmentService(session)

        first = await service.accrueDailyProfit(now=day(1))
        second = await service.accrueDailyProfit(now=day(1))

        assert first["accrued"] == 1
        assert second["accrued"] == 0
        assert second["skipped"] == 1
        assert balance_of(user) == Decimal("2")

    @pytest.mark.asyncio
    async def test_terminated_investment_stops_accruing(
            self, session, make_user, make_plan, make_investment, balance_of, day):
        user = make_user()
        plan = make_plan(dailyIncome=Decimal("1"))
        investment = make_investment(user, plan, "100")
        session.commit()
        service = InvestmentService(session)

        await service.accrueDailyProfit(now=day(0))
        terminated = await service.terminateInvestment(investment.investmentID, reviewerId=1, reason="Fraud check")
        session.commit()

        summary = await service.accrueDailyProfit(now=day(1))

        assert terminated.status == InvestmentStatus.TERMINATED.value
        assert summary["processed"] == 0
        assert balance_of(user) == Decimal("1")

        with pytest.raises(AlreadyProcessed):
            await service.terminateInvestment(investment.investmentID, reviewerId=1, reason="Again")

    @pytest.mark.asyncio
    async def test_failing_investment_does_not_stop_batch(
            self, session, make_user, make_plan, make_investment, balance_of, monkeypatch, day):
        good = make_user()
        bad = make_user()
        plan = make_plan(dailyIncome=Decimal("1"))
        make_investment(good, plan, "100")
        badInvestment = make_investment(bad, plan, "100")
        session.commit()
        badId = badInvestment.investmentID

        original = InvestmentService.calculateDailyProfit

        def flaky(investment, plan):
            if investment.investmentID == badId:
                raise RuntimeError("boom")
            return original(investment, plan)

        monkeypatch.setattr(InvestmentService, "calculateDailyProfit", staticmethod(flaky))

        summary = await InvestmentService(session).accrueDailyProfit(now=day(0))

        assert summary["accrued"] == 1
        assert len(summary["errors"]) == 1
        assert summary["errors"][0]["itemId"] == badId
        assert balance_of(good) == Decimal("1")
        assert balance_of(bad) == Decimal("0")

    def test_daily_profit_math(self, make_user, make_plan, make_investment):
        user = make_user()
        fixed = make_plan(isFixedDeposit=True, returnRate=Decimal("10"), dailyIncome=None, durationInDays=3)
        running = make_plan(dailyIncome=Decimal("1.5"))

        # 100 * 10% / 3 days, rounded down at 8 places
        assert InvestmentService.calculateDailyProfit(
            make_investment(user, fixed, "100"), fixed
        ) == Decimal("3.33333333")
        assert InvestmentService.calculateDailyProfit(
            make_investment(user, running, "40"), running
        ) == Decimal("0.6")

    @pytest.mark.asyncio
    async def test_fixed_deposit_last_day_pays_remainder(
            self, session, make_user, make_plan, make_deposit, balance_of, day):
        """
        TEST: 100 at 10% over 3 days does not divide evenly.

        Verify: the last day tops the profit up to exactly 10.00.
        """
        user = make_user()
        plan = make_plan(isFixedDeposit=True, returnRate=Decimal("10"), dailyIncome=None, durationInDays=3)
        deposit = make_deposit(user, "100")
        service = InvestmentService(session)
        result = await service.approveDeposit(deposit.depositID, plan.planID, reviewerId=1, now=day(0))
        session.commit()
        investmentId = result["investment"].investmentID

        profits = []
        for n in range(3):
            summary = await service.accrueDailyProfit(now=day(n))
            profits.append(summary["totalProfit"])

        assert profits == [Decimal("3.33333333"), Decimal("3.33333333"), Decimal("3.33333334")]
        assert session.get(Investment, investmentId).profit == Decimal("10")
        assert balance_of(user) == Decimal("10")
