# investo/models/affiliate_reward.py
"""
AffiliateReward model - one commission paid to a referrer for one referral.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base, _get_current_time
from models.types import MoneyType, RateType


class AffiliateReward(Base):
    __tablename__ = 'affiliate_rewards'
    __table_args__ = (
        # At most one reward of each type per pair per business day
        UniqueConstraint(
            'referrerID', 'referralID', 'rewardDate', 'rewardType',
            name='uq_affiliate_rewards_pair_day_type'
        ),
    )

    rewardID = Column(Integer, primary_key=True, autoincrement=True)

    # Who earns / who generated it
    referrerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    referralID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    amount = Column(MoneyType, nullable=False)
    rewardType = Column(String(20), nullable=False)  # daily, first_purchase

    # Calculation snapshot
    referralLevel = Column(Integer, nullable=False)  # referral's level (daily) or plan level (first purchase)
    sourceLevel = Column(Integer, nullable=False)  # referrer's level at calculation time
    rateType = Column(String(20), nullable=False)  # fixed, percentage
    rate = Column(RateType, nullable=False)
    baseAmount = Column(MoneyType, nullable=True)  # qualifying amount for percentage rates

    rewardDate = Column(Date, nullable=False)  # business-timezone calendar date
    status = Column(String(20), nullable=False, default='completed')
    processedAt = Column(DateTime, default=_get_current_time)

    # Explicit links
    transactionID = Column(Integer, ForeignKey('transactions.transactionID'), nullable=True)
    investmentID = Column(Integer, ForeignKey('investments.investmentID'), nullable=True)

    # Relationships
    referrer = relationship('User', foreign_keys=[referrerID])
    referral = relationship('User', foreign_keys=[referralID])
    transaction = relationship('Transaction')
    investment = relationship('Investment')

    def __repr__(self):
        return (
            f"<AffiliateReward(rewardID={self.rewardID}, referrer={self.referrerID}, "
            f"referral={self.referralID}, amount={self.amount}, type={self.rewardType})>"
        )
