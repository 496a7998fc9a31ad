# finance_system/services/account_service.py
"""
Account service - affiliate codes, referrer links, levels and team stats.
"""
import secrets
import string
from decimal import Decimal
from typing import Dict, Optional, Any
from sqlalchemy import update
from sqlalchemy.orm import Session
import logging

from models.user import User
from finance_system.errors import NotFound, InvalidLevel, ReferrerAlreadyAssigned
from finance_system.utils.chain_walker import ChainWalker, MAX_TEAM_DEPTH
from finance_system.utils.money import ZERO

logger = logging.getLogger(__name__)

AFFILIATE_CODE_ALPHABET = string.ascii_uppercase + string.digits
AFFILIATE_CODE_SUFFIX_LENGTH = 6
MIN_LEVEL = 1
MAX_LEVEL = 4


def generate_affiliate_code(email: str) -> str:
    """
    First three letters of the email, upper-cased, plus six random characters.

    Example: "alice@example.com" -> "ALI7Q2ZK9"
    """
    prefix = ''.join(ch for ch in email.split('@')[0] if ch.isalnum())[:3].upper()
    suffix = ''.join(
        secrets.choice(AFFILIATE_CODE_ALPHABET) for _ in range(AFFILIATE_CODE_SUFFIX_LENGTH)
    )
    return f"{prefix}{suffix}"


class AccountService:
    """Service for user accounts in the affiliate program."""

    def __init__(self, session: Session):
        self.session = session

    def getUser(self, userId: int, forUpdate: bool = False) -> User:
        """
        Raises:
            NotFound: If user does not exist
        """
        query = self.session.query(User).filter_by(userID=userId)
        if forUpdate:
            query = query.with_for_update().populate_existing()
        user = query.first()
        if not user:
            raise NotFound(f"User {userId} not found")
        return user

    def getByAffiliateCode(self, affiliateCode: str) -> Optional[User]:
        return self.session.query(User).filter_by(
            affiliateCode=affiliateCode.strip().upper()
        ).first()

    async def createAccount(
            self,
            email: str,
            name: Optional[str] = None,
            referralCode: Optional[str] = None
    ) -> User:
        """
        Create an account with a unique affiliate code.

        Args:
            email: Unique email
            name: Display name
            referralCode: Affiliate code of the referrer (optional)

        Raises:
            ValueError: If email is already registered
            NotFound: If referralCode matches nobody
        """
        email = email.strip().lower()
        if self.session.query(User.userID).filter_by(email=email).first():
            raise ValueError(f"Email {email} is already registered")

        code = generate_affiliate_code(email)
        while self.session.query(User.userID).filter_by(affiliateCode=code).first():
            code = generate_affiliate_code(email)

        user = User(
            email=email,
            name=name,
            level=0,
            affiliateCode=code,
            affiliateEarnings=ZERO,
            hasInvested=False,
            isActive=True
        )
        self.session.add(user)
        self.session.flush()

        logger.info(f"Account created: userID={user.userID}, code={code}")

        if referralCode:
            await self.assignReferrer(user.userID, referralCode)

        return user

    async def assignReferrer(self, userId: int, affiliateCode: str) -> User:
        """
        Link user to the owner of affiliateCode. Allowed once.

        Raises:
            NotFound: Unknown user or code
            ReferrerAlreadyAssigned: User already has a referrer
            ValueError: Self-referral or a link that would close a cycle
        """
        user = self.getUser(userId, forUpdate=True)

        if user.referrerID is not None:
            raise ReferrerAlreadyAssigned(f"User {userId} already has referrer {user.referrerID}")

        referrer = self.getByAffiliateCode(affiliateCode)
        if not referrer:
            raise NotFound(f"Affiliate code {affiliateCode} not found")

        if referrer.userID == user.userID:
            raise ValueError("Users cannot refer themselves")

        walker = ChainWalker(self.session)
        if walker.is_in_upline(referrer, user.userID):
            raise ValueError(
                f"Referrer {referrer.userID} is in the downline of user {userId}"
            )

        user.referrerID = referrer.userID
        self.session.flush()

        logger.info(f"Referrer assigned: user {userId} → referrer {referrer.userID}")
        return user

    async def updateLevel(self, userId: int, level: int, updatedBy: Optional[int] = None) -> User:
        """
        Admin level update. Levels only go up; a lower value is ignored.

        Raises:
            InvalidLevel: level outside 1..4
            NotFound: Unknown user
        """
        if not isinstance(level, int) or isinstance(level, bool) or not MIN_LEVEL <= level <= MAX_LEVEL:
            raise InvalidLevel(f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level!r}")

        user = self.getUser(userId, forUpdate=True)

        if level < (user.level or 0):
            logger.warning(
                f"Level downgrade ignored for user {userId}: {user.level} → {level} "
                f"(requested by {updatedBy})"
            )
            return user

        self.raiseLevel(userId, level)

        logger.info(f"Level updated for user {userId}: {user.level} (by {updatedBy})")
        return user

    def raiseLevel(self, userId: int, level: int) -> bool:
        """
        Monotonic level bump in SQL: level = max(level, :level).

        Returns:
            True if the level changed
        """
        result = self.session.execute(
            update(User)
            .where(User.userID == userId)
            .where(User.level < level)
            .values(level=level)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    async def getTeam(self, userId: int, maxDepth: int = MAX_TEAM_DEPTH) -> Dict[str, Any]:
        """
        Team overview: direct members plus counts by depth.

        Active members are those above level 1, as shown to users.
        """
        user = self.getUser(userId)
        walker = ChainWalker(self.session)
        team = walker.get_team_by_depth(user, maxDepth)

        direct = team.get(1, [])
        members = [
            {
                "userID": member.userID,
                "name": member.name,
                "email": member.email,
                "level": member.level,
                "joinedAt": member.createdAt,
            }
            for member in direct
        ]

        return {
            "affiliateCode": user.affiliateCode,
            "members": members,
            "stats": {
                "totalMembers": len(direct),
                "activeMembers": sum(1 for member in direct if (member.level or 0) > 1),
                "affiliateEarnings": Decimal(str(user.affiliateEarnings or 0)),
                "byDepth": {depth: len(users) for depth, users in team.items()},
                "totalDownline": sum(len(users) for users in team.values()),
            }
        }
