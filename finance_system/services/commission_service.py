# finance_system/services/commission_service.py
"""
Commission calculation service - affiliate rewards for referrers.

Two kinds of rewards:
- first purchase: once, when a referred user's first investment is approved
- daily: every business day, one credit per referrer summing one reward
  per direct referral, rate taken from the [referrer level][referral level]
  table
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Dict, Optional, Any
from sqlalchemy import func, update, type_coerce
from sqlalchemy.orm import Session
import logging

from models.types import MoneyType
from models.user import User
from models.investment import Investment
from models.investment_plan import InvestmentPlan
from models.affiliate_reward import AffiliateReward
from models.enums import InvestmentStatus, RewardType, RewardStatus, TransactionSource
from finance_system.config.commission_rates import (
    AFFILIATE_LEVELS,
    CommissionRate,
    RateType,
    get_daily_rates,
    get_first_purchase_rates,
    get_rate,
    calculate_reward_amount,
)
from finance_system.errors import RateNotConfigured, BatchItemFailed
from finance_system.services.ledger_service import LedgerService
from finance_system.utils.chain_walker import ChainWalker
from finance_system.utils.money import ZERO, quantize_money
from finance_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class CommissionService:
    """Service for affiliate commissions."""

    def __init__(self, session: Session, ledger: Optional[LedgerService] = None):
        self.session = session
        self.ledger = ledger or LedgerService(session)

    # ═══════════════════════════════════════════════════════════════════
    # CALCULATION HELPERS
    # ═══════════════════════════════════════════════════════════════════

    @staticmethod
    def calculateRewardAmount(rate: CommissionRate, baseAmount) -> Decimal:
        return calculate_reward_amount(rate, baseAmount)

    def getQualifyingAmount(self, userId: int) -> Decimal:
        """Principal of the user's active investments."""
        total = self.session.query(
            type_coerce(func.coalesce(func.sum(Investment.amount), 0), MoneyType)
        ).filter(
            Investment.userID == userId,
            Investment.status == InvestmentStatus.ACTIVE.value
        ).scalar()
        return quantize_money(total)

    def _addEarnings(self, userId: int, amount: Decimal) -> None:
        """affiliateEarnings += amount, in SQL, same transaction as the credit."""
        self.session.execute(
            update(User)
            .where(User.userID == userId)
            .values(affiliateEarnings=User.affiliateEarnings + amount)
            .execution_options(synchronize_session="fetch")
        )

    # ═══════════════════════════════════════════════════════════════════
    # FIRST PURCHASE
    # ═══════════════════════════════════════════════════════════════════

    async def processFirstPurchaseCommission(
            self,
            investment: Investment,
            now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Pay the referrer a percentage of the referral's first investment.

        Runs inside the approval transaction. Only investments flagged
        isFirstPurchase qualify; the ledger reference makes it one-shot.

        Returns:
            Commission dict or None if nothing is due
        """
        if not investment.isFirstPurchase:
            return None

        buyer = self.session.get(User, investment.userID)
        if not buyer or not buyer.referrerID:
            return None

        referrer = self.session.query(User).filter_by(
            userID=buyer.referrerID
        ).with_for_update().populate_existing().first()
        if not referrer:
            logger.warning(f"Referrer {buyer.referrerID} of user {buyer.userID} not found")
            return None

        if referrer.level not in AFFILIATE_LEVELS:
            logger.info(
                f"Referrer {referrer.userID} has level {referrer.level}, "
                f"no first purchase commission"
            )
            return None

        plan = investment.plan or self.session.get(InvestmentPlan, investment.planID)

        try:
            rate = get_rate(get_first_purchase_rates(), referrer.level, plan.minLevel)
        except RateNotConfigured as e:
            logger.warning(f"{e} (first purchase), reward is zero")
            return None

        if rate.rateType is not RateType.PERCENTAGE:
            logger.warning(
                f"First purchase rate [{referrer.level}][{plan.minLevel}] is not a percentage, "
                f"treating value as percent"
            )
            rate = CommissionRate(RateType.PERCENTAGE, rate.value)

        amount = calculate_reward_amount(rate, investment.initialAmount)
        if amount <= ZERO:
            return None

        now = now or timeMachine.now
        transaction = await self.ledger.credit(
            referrer.userID,
            amount,
            TransactionSource.REFERRAL,
            f"First purchase commission from {buyer.name or buyer.email}",
            metadata={
                "rewardType": RewardType.FIRST_PURCHASE.value,
                "referralID": buyer.userID,
                "investmentID": investment.investmentID,
                "rate": rate.asDict(),
            },
            reference=f"affiliate-first:{investment.investmentID}"
        )

        reward = AffiliateReward(
            referrerID=referrer.userID,
            referralID=buyer.userID,
            amount=amount,
            rewardType=RewardType.FIRST_PURCHASE.value,
            referralLevel=plan.minLevel,
            sourceLevel=referrer.level,
            rateType=rate.rateType.value,
            rate=rate.value,
            baseAmount=investment.initialAmount,
            rewardDate=timeMachine.localDate(now),
            status=RewardStatus.COMPLETED.value,
            processedAt=now,
            transactionID=transaction.transactionID,
            investmentID=investment.investmentID
        )
        self.session.add(reward)
        self._addEarnings(referrer.userID, amount)
        self.session.flush()

        logger.info(
            f"First purchase commission: referrer={referrer.userID}, "
            f"referral={buyer.userID}, amount={amount}"
        )

        return {
            "referrerID": referrer.userID,
            "referralID": buyer.userID,
            "amount": amount,
            "rate": rate.value,
            "rewardID": reward.rewardID,
            "transactionID": transaction.transactionID,
        }

    # ═══════════════════════════════════════════════════════════════════
    # DAILY REWARDS
    # ═══════════════════════════════════════════════════════════════════

    async def processDailyAffiliateRewards(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Daily batch over all referrers.

        One commit per referrer; a failing referrer is rolled back and
        reported, the rest continue.

        Returns:
            Summary dict: rewardDate, totalProcessed (amount), totalReferrersRewarded,
            referrersScanned, skippedAlreadyProcessed, perReferrerErrors
        """
        now = now or timeMachine.now
        rewardDate = timeMachine.localDate(now)

        referrerIds = [
            row[0] for row in self.session.query(User.referrerID).filter(
                User.referrerID.isnot(None)
            ).distinct().order_by(User.referrerID).all()
        ]

        summary = {
            "rewardDate": rewardDate,
            "totalProcessed": ZERO,
            "totalReferrersRewarded": 0,
            "referrersScanned": len(referrerIds),
            "skippedAlreadyProcessed": 0,
            "perReferrerErrors": [],
        }

        logger.info(f"Daily affiliate rewards for {rewardDate}: {len(referrerIds)} referrers")

        for referrerId in referrerIds:
            try:
                result = await self._rewardReferrer(referrerId, rewardDate, now)
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                failure = BatchItemFailed(referrerId, str(e), itemType="referrer")
                logger.error(f"Daily reward failed: {failure}", exc_info=True)
                summary["perReferrerErrors"].append(failure.asDict())
                continue

            if result is None:
                summary["skippedAlreadyProcessed"] += 1
            elif result > ZERO:
                summary["totalProcessed"] += result
                summary["totalReferrersRewarded"] += 1

        logger.info(
            f"Daily affiliate rewards done for {rewardDate}: "
            f"{summary['totalReferrersRewarded']} referrers rewarded, "
            f"total {summary['totalProcessed']}, "
            f"{len(summary['perReferrerErrors'])} errors"
        )
        return summary

    def _alreadyRewarded(self, referrerId: int, rewardDate: date) -> bool:
        return self.session.query(AffiliateReward.rewardID).filter(
            AffiliateReward.referrerID == referrerId,
            AffiliateReward.rewardDate == rewardDate,
            AffiliateReward.rewardType == RewardType.DAILY.value
        ).first() is not None

    async def _rewardReferrer(
            self,
            referrerId: int,
            rewardDate: date,
            now: datetime
    ) -> Optional[Decimal]:
        """
        Compute and pay one referrer's daily reward.

        Returns:
            Amount paid (ZERO if nothing due), None if already rewarded today
        """
        referrer = self.session.query(User).filter_by(
            userID=referrerId
        ).with_for_update().populate_existing().first()

        if not referrer:
            logger.warning(f"Referrer {referrerId} not found")
            return ZERO

        if referrer.level not in AFFILIATE_LEVELS:
            logger.debug(f"Referrer {referrerId} level {referrer.level} outside program, skipped")
            return ZERO

        if self._alreadyRewarded(referrerId, rewardDate):
            logger.debug(f"Referrer {referrerId} already rewarded for {rewardDate}")
            return None

        rates = get_daily_rates()
        walker = ChainWalker(self.session)
        rewards: List[Dict[str, Any]] = []

        for referral in walker.get_direct_referrals(referrer):
            if referral.level not in AFFILIATE_LEVELS:
                continue

            try:
                rate = get_rate(rates, referrer.level, referral.level)
            except RateNotConfigured as e:
                logger.warning(f"{e} (referrer {referrerId}, referral {referral.userID}), reward is zero")
                continue

            baseAmount = None
            if rate.rateType is RateType.PERCENTAGE:
                baseAmount = self.getQualifyingAmount(referral.userID)

            amount = calculate_reward_amount(rate, baseAmount)
            if amount <= ZERO:
                continue

            rewards.append({
                "referral": referral,
                "rate": rate,
                "baseAmount": baseAmount,
                "amount": amount,
            })

        if not rewards:
            return ZERO

        total = sum((reward["amount"] for reward in rewards), ZERO)

        transaction = await self.ledger.credit(
            referrerId,
            total,
            TransactionSource.REFERRAL,
            f"Daily affiliate reward from {len(rewards)} team member(s)",
            metadata={
                "rewardType": RewardType.DAILY.value,
                "rewardDate": rewardDate,
                "referrals": [reward["referral"].userID for reward in rewards],
            },
            reference=f"affiliate-daily:{referrerId}:{rewardDate.isoformat()}"
        )

        for reward in rewards:
            self.session.add(AffiliateReward(
                referrerID=referrerId,
                referralID=reward["referral"].userID,
                amount=reward["amount"],
                rewardType=RewardType.DAILY.value,
                referralLevel=reward["referral"].level,
                sourceLevel=referrer.level,
                rateType=reward["rate"].rateType.value,
                rate=reward["rate"].value,
                baseAmount=reward["baseAmount"],
                rewardDate=rewardDate,
                status=RewardStatus.COMPLETED.value,
                processedAt=now,
                transactionID=transaction.transactionID
            ))

        self._addEarnings(referrerId, total)
        self.session.flush()

        logger.info(
            f"Daily reward: referrer={referrerId}, referrals={len(rewards)}, total={total}"
        )
        return total
