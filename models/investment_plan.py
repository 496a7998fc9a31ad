# investo/models/investment_plan.py
"""
InvestmentPlan model - reference data for investment products.

Fixed-deposit plans pay returnRate % of principal spread over the duration
and return the principal at the end. Running-yield plans pay dailyIncome %
of the current amount every day.
"""
from sqlalchemy import Column, Integer, String, Boolean, JSON, CheckConstraint
from models.base import Base, AuditMixin
from models.types import MoneyType, RateType


class InvestmentPlan(Base, AuditMixin):
    __tablename__ = 'investment_plans'
    __table_args__ = (
        CheckConstraint('minLevel >= 1 AND minLevel <= 4', name='ck_plans_min_level'),
        CheckConstraint('durationInDays >= 1', name='ck_plans_duration'),
    )

    planID = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)

    # Bounds (maxAmount NULL = unlimited)
    minAmount = Column(MoneyType, nullable=False)
    maxAmount = Column(MoneyType, nullable=True)

    durationInDays = Column(Integer, nullable=False)

    # Yield
    isFixedDeposit = Column(Boolean, nullable=False, default=False)
    returnRate = Column(RateType, nullable=True)  # total % over duration (fixed deposit)
    dailyIncome = Column(RateType, nullable=True)  # % per day (running yield)

    # Level gate 1..4, also the level granted on purchase
    minLevel = Column(Integer, nullable=False, default=1)

    features = Column(JSON, nullable=True)  # list of display strings
    isActive = Column(Boolean, nullable=False, default=True)
    isFeatured = Column(Boolean, nullable=False, default=False)

    def acceptsAmount(self, amount) -> bool:
        """Check amount against plan bounds."""
        if amount < self.minAmount:
            return False
        if self.maxAmount is not None and amount > self.maxAmount:
            return False
        return True

    def __repr__(self):
        return f"<InvestmentPlan(planID={self.planID}, name={self.name}, minLevel={self.minLevel})>"
