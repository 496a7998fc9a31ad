# tests/test_withdrawal_service.py
"""
Tests for WithdrawalService.

Run:
    pytest tests/test_withdrawal_service.py -v
"""
from decimal import Decimal

import pytest

from models import Notification, Transaction, Withdrawal
from models.enums import TransactionStatus, TransactionType, WithdrawalStatus
from finance_system.errors import AlreadyProcessed, InsufficientFunds, InvalidAmount, NotFound
from finance_system.services.withdrawal_service import WithdrawalService

WALLET = "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"


class TestRequestWithdrawal:

    @pytest.mark.asyncio
    async def test_request_creates_pending(self, session, make_user, fund, balance_of):
        user = make_user()
        await fund(user, 100)

        withdrawal = await WithdrawalService(session).requestWithdrawal(
            user.userID, "40", "bitcoin", walletAddress=WALLET
        )

        assert withdrawal.status == WithdrawalStatus.PENDING.value
        assert withdrawal.amount == Decimal("40")
        assert withdrawal.walletAddress == WALLET
        # nothing is held while pending
        assert balance_of(user) == Decimal("100")

    @pytest.mark.asyncio
    async def test_more_than_balance(self, session, make_user, fund):
        user = make_user()
        await fund(user, 10)

        with pytest.raises(InsufficientFunds):
            await WithdrawalService(session).requestWithdrawal(
                user.userID, 11, "bitcoin", walletAddress=WALLET
            )

    @pytest.mark.asyncio
    async def test_invalid_amount(self, session, make_user):
        user = make_user()
        with pytest.raises(InvalidAmount):
            await WithdrawalService(session).requestWithdrawal(
                user.userID, 0, "bitcoin", walletAddress=WALLET
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, kwargs", [
        ("paypal", {"walletAddress": WALLET}),
        ("ethereum", {}),
        ("bank_transfer", {"walletAddress": WALLET}),
    ])
    async def test_bad_destination(self, session, make_user, fund, method, kwargs):
        user = make_user()
        await fund(user, 100)

        with pytest.raises(ValueError):
            await WithdrawalService(session).requestWithdrawal(user.userID, 10, method, **kwargs)

        assert session.query(Withdrawal).count() == 0

    @pytest.mark.asyncio
    async def test_bank_transfer_keeps_details_only(self, session, make_user, fund):
        user = make_user()
        await fund(user, 100)
        details = {"iban": "PK36SCBL0000001123456702", "holder": "Test User"}

        withdrawal = await WithdrawalService(session).requestWithdrawal(
            user.userID, 10, "bank_transfer", walletAddress=WALLET, bankDetails=details
        )

        assert withdrawal.bankDetails == details
        assert withdrawal.walletAddress is None


class TestReviewWithdrawal:

    @pytest.mark.asyncio
    async def test_approve_debits_wallet(self, session, make_user, fund, balance_of, calc_journal_sum):
        user = make_user()
        await fund(user, 100)
        service = WithdrawalService(session)
        withdrawal = await service.requestWithdrawal(user.userID, 40, "bitcoin", walletAddress=WALLET)

        result = await service.approveWithdrawal(withdrawal.withdrawalID, processorId=7, payoutRef="tx-abc")
        session.commit()

        assert result["withdrawal"].status == WithdrawalStatus.APPROVED.value
        assert result["withdrawal"].processedBy == 7
        assert result["withdrawal"].payoutRef == "tx-abc"
        assert result["transaction"].reference == f"withdrawal:{withdrawal.withdrawalID}"
        assert balance_of(user) == Decimal("60")
        assert calc_journal_sum(user.userID) == Decimal("60")
        assert session.query(Notification).filter_by(template="withdrawal_approved").count() == 1

    @pytest.mark.asyncio
    async def test_approve_when_balance_dropped(self, session, make_user, fund, balance_of):
        user = make_user()
        await fund(user, 50)
        service = WithdrawalService(session)
        first = await service.requestWithdrawal(user.userID, 40, "bitcoin", walletAddress=WALLET)
        second = await service.requestWithdrawal(user.userID, 40, "bitcoin", walletAddress=WALLET)
        await service.approveWithdrawal(first.withdrawalID, processorId=7)
        session.commit()
        secondId = second.withdrawalID

        with pytest.raises(InsufficientFunds):
            await service.approveWithdrawal(secondId, processorId=7)
        session.rollback()

        assert session.get(Withdrawal, secondId).status == WithdrawalStatus.PENDING.value
        assert balance_of(user) == Decimal("10")

    @pytest.mark.asyncio
    async def test_reject_records_failed_debit(self, session, make_user, fund, balance_of):
        user = make_user()
        await fund(user, 100)
        service = WithdrawalService(session)
        withdrawal = await service.requestWithdrawal(user.userID, 40, "bitcoin", walletAddress=WALLET)

        result = await service.rejectWithdrawal(withdrawal.withdrawalID, processorId=7, notes="Address mismatch")
        session.commit()

        assert result["withdrawal"].status == WithdrawalStatus.REJECTED.value
        assert result["transaction"].status == TransactionStatus.FAILED.value
        assert result["transaction"].type == TransactionType.DEBIT.value
        assert balance_of(user) == Decimal("100")

    @pytest.mark.asyncio
    async def test_review_twice(self, session, make_user, fund):
        user = make_user()
        await fund(user, 100)
        service = WithdrawalService(session)
        withdrawal = await service.requestWithdrawal(user.userID, 40, "bitcoin", walletAddress=WALLET)
        await service.rejectWithdrawal(withdrawal.withdrawalID, processorId=7, notes="No")

        with pytest.raises(AlreadyProcessed):
            await service.approveWithdrawal(withdrawal.withdrawalID, processorId=7)

        assert session.query(Transaction).filter_by(
            reference=f"withdrawal:{withdrawal.withdrawalID}"
        ).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_withdrawal(self, session):
        with pytest.raises(NotFound):
            await WithdrawalService(session).approveWithdrawal(12345, processorId=7)
