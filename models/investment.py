# investo/models/investment.py
"""
Investment model - time-bound position created from an approved deposit.
"""
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin
from models.types import MoneyType


class Investment(Base, AuditMixin):
    __tablename__ = 'investments'

    investmentID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    planID = Column(Integer, ForeignKey('investment_plans.planID'), nullable=False)
    depositID = Column(Integer, ForeignKey('deposits.depositID'), nullable=True, unique=True)

    # Amounts
    amount = Column(MoneyType, nullable=False)  # current principal
    initialAmount = Column(MoneyType, nullable=False)
    profit = Column(MoneyType, nullable=False, default=0)  # accrued so far

    status = Column(String(20), nullable=False, default='active', index=True)  # active, completed, terminated

    # Schedule (naive UTC)
    startDate = Column(DateTime, nullable=False)
    endDate = Column(DateTime, nullable=False)

    # Accrual guard: business-timezone calendar date of the last credit
    lastProfitDate = Column(Date, nullable=True)
    daysAccrued = Column(Integer, nullable=False, default=0)

    # Stored once at creation by compare-and-set on users.hasInvested
    isFirstPurchase = Column(Boolean, nullable=False, default=False)

    completedAt = Column(DateTime, nullable=True)
    terminatedAt = Column(DateTime, nullable=True)
    terminatedBy = Column(Integer, nullable=True)
    terminationReason = Column(String, nullable=True)

    # Relationships
    user = relationship('User', backref='investments')
    plan = relationship('InvestmentPlan')
    deposit = relationship('Deposit', backref=backref('investment', uselist=False))

    def __repr__(self):
        return (
            f"<Investment(investmentID={self.investmentID}, amount={self.amount}, "
            f"profit={self.profit}, status={self.status})>"
        )
