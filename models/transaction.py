# investo/models/transaction.py
"""
Transaction model - append-only ledger journal.

Wallet.balance == SUM(credit amounts) - SUM(debit amounts) over completed rows.
Completed rows are immutable (see models/listeners/ledger_listeners.py).
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, _get_current_time
from models.types import MoneyType


class Transaction(Base):
    __tablename__ = 'transactions'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_transactions_amount_positive'),
    )

    transactionID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    walletID = Column(Integer, ForeignKey('wallets.walletID'), nullable=False, index=True)

    amount = Column(MoneyType, nullable=False)  # always positive, direction in "type"
    type = Column(String(10), nullable=False)  # credit, debit
    status = Column(String(20), nullable=False, default='completed')  # pending, completed, failed
    source = Column(String(30), nullable=False)  # deposit, withdrawal, referral, investment_profit...

    description = Column(String, nullable=True)
    meta = Column('metadata', JSON, nullable=True)

    # Idempotency key, e.g. "deposit:12" or "profit:7:2024-05-01"
    reference = Column(String, nullable=True, unique=True)

    createdAt = Column(DateTime, default=_get_current_time, index=True)

    # Relationships
    user = relationship('User', backref='transactions')
    wallet = relationship('Wallet', backref='transactions')

    def __repr__(self):
        return (
            f"<Transaction(transactionID={self.transactionID}, type={self.type}, "
            f"amount={self.amount}, status={self.status})>"
        )
