# investo/models/user.py
"""
User model - platform account, referral link and affiliate level.
"""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin
from models.types import MoneyType


class User(Base, AuditMixin):
    __tablename__ = 'users'
    __table_args__ = (
        CheckConstraint('level >= 0 AND level <= 4', name='ck_users_level_range'),
    )

    # Primary key
    userID = Column(Integer, primary_key=True, autoincrement=True)

    # Identity (resolved by the external auth layer)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)

    # 0 until the first approved investment, then 1..4
    level = Column(Integer, nullable=False, default=0)

    # Referral link - set once, never changed
    referrerID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    affiliateCode = Column(String, nullable=False, unique=True, index=True)
    affiliateEarnings = Column(MoneyType, nullable=False, default=0)

    # Flipped exactly once by compare-and-set on first approved deposit
    hasInvested = Column(Boolean, nullable=False, default=False)

    isActive = Column(Boolean, nullable=False, default=True)

    # Note: createdAt, updatedAt - от AuditMixin

    # Relationships
    referrer = relationship('User', remote_side=[userID], backref='referrals')

    def __repr__(self):
        return f"<User(userID={self.userID}, email={self.email}, level={self.level})>"
