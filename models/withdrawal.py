# investo/models/withdrawal.py
"""
Withdrawal model - payout request awaiting manual processing.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin
from models.types import MoneyType


class Withdrawal(Base, AuditMixin):
    __tablename__ = 'withdrawals'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_withdrawals_amount_positive'),
    )

    withdrawalID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    amount = Column(MoneyType, nullable=False)
    currency = Column(String(3), nullable=False, default='USD')
    status = Column(String(20), nullable=False, default='pending', index=True)  # pending, approved, rejected

    # Destination
    paymentMethod = Column(String, nullable=False)  # bitcoin, ethereum, litecoin, bank_transfer
    walletAddress = Column(String, nullable=True)  # required for crypto methods
    bankDetails = Column(JSON, nullable=True)  # required for bank_transfer

    # Processing
    processedBy = Column(Integer, nullable=True)
    processedAt = Column(DateTime, nullable=True)
    payoutRef = Column(String, nullable=True)
    adminNotes = Column(String, nullable=True)

    # Relationships
    user = relationship('User', backref='withdrawals')

    def __repr__(self):
        return f"<Withdrawal(withdrawalID={self.withdrawalID}, amount={self.amount}, status={self.status})>"
