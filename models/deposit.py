# investo/models/deposit.py
"""
Deposit model - funding request awaiting manual review.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin
from models.types import MoneyType


class Deposit(Base, AuditMixin):
    __tablename__ = 'deposits'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_deposits_amount_positive'),
    )

    # Primary key
    depositID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    amount = Column(MoneyType, nullable=False)
    currency = Column(String(3), nullable=False, default='USD')

    # Payment evidence
    paymentMethod = Column(String, nullable=False)
    transactionRef = Column(String, nullable=True)  # payment network reference
    evidenceUrl = Column(String, nullable=False)  # screenshot / proof

    status = Column(String(20), nullable=False, default='pending', index=True)  # pending, approved, rejected

    # Review
    assignedPlanID = Column(Integer, ForeignKey('investment_plans.planID'), nullable=True)
    reviewedBy = Column(Integer, nullable=True)  # reviewer userID
    reviewedAt = Column(DateTime, nullable=True)
    adminNotes = Column(String, nullable=True)

    # Relationships
    user = relationship('User', backref='deposits')
    assignedPlan = relationship('InvestmentPlan')

    def __repr__(self):
        return f"<Deposit(depositID={self.depositID}, amount={self.amount}, status={self.status})>"
