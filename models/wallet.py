# investo/models/wallet.py
"""
Wallet model - one balance per user.

Balance is only ever changed by LedgerService through SQL increments,
never by assigning the attribute.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, backref
from models.base import Base, _get_current_time
from models.types import MoneyType


class Wallet(Base):
    __tablename__ = 'wallets'
    __table_args__ = (
        CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
    )

    walletID = Column(Integer, primary_key=True, autoincrement=True)

    # One wallet per user - the unique index makes find-or-create race-safe
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, unique=True)

    balance = Column(MoneyType, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='USD')  # USD, ETH, BTC
    isActive = Column(Boolean, nullable=False, default=True)

    createdAt = Column(DateTime, default=_get_current_time)
    lastUpdated = Column(DateTime, default=_get_current_time)

    # Relationships
    user = relationship('User', backref=backref('wallet', uselist=False))

    def __repr__(self):
        return f"<Wallet(walletID={self.walletID}, userID={self.userID}, balance={self.balance})>"
