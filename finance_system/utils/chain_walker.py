# finance_system/utils/chain_walker.py
"""
Safe referral chain walking utilities.
Prevents infinite loops on corrupted referrer links.
"""
from typing import Optional, Callable, Set, List, Dict
from sqlalchemy.orm import Session
import logging

from models.user import User

logger = logging.getLogger(__name__)

# Depth of the affiliate program: direct referrals are depth 1
MAX_TEAM_DEPTH = 4


class ChainWalker:
    """
    Safe utilities for walking referrer (upline) and referral (downline) chains.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_direct_referrals(self, user: User) -> List[User]:
        """Users whose referrer is `user`, oldest first."""
        return self.session.query(User).filter(
            User.referrerID == user.userID
        ).order_by(User.userID).all()

    def walk_upline(
            self,
            start_user: User,
            callback: Callable[[User, int], bool],
            max_depth: int = 50
    ) -> int:
        """
        Safely walk up the referrer chain, calling callback for each user.

        Args:
            start_user: Starting user
            callback: Function(user, depth) -> continue_walking (bool)
            max_depth: Maximum depth to prevent runaway loops

        Returns:
            Number of users processed
        """
        current_user = start_user
        depth = 1
        processed = 0
        visited = {start_user.userID}

        while current_user.referrerID and depth <= max_depth:
            if current_user.referrerID in visited:
                logger.error(f"Cycle detected at user {current_user.referrerID}")
                break

            referrer = self.session.get(User, current_user.referrerID)
            if not referrer:
                logger.warning(
                    f"Referrer not found: userID={current_user.referrerID} "
                    f"for user {current_user.userID}"
                )
                break

            visited.add(referrer.userID)
            processed += 1

            if not callback(referrer, depth):
                break

            current_user = referrer
            depth += 1

        if depth > max_depth and current_user.referrerID:
            logger.error(f"Max depth ({max_depth}) exceeded starting from user {start_user.userID}")

        return processed

    def walk_downline(
            self,
            start_user: User,
            callback: Callable[[User, int], None],
            max_depth: int = MAX_TEAM_DEPTH,
            visited: Optional[Set[int]] = None,
            _depth: int = 1
    ) -> int:
        """
        Safely walk down the referral tree, breadth of each node first.

        Args:
            start_user: Starting user
            callback: Function(user, depth) to call for each user
            max_depth: Maximum depth (1 = direct referrals only)
            visited: Set of visited user IDs (for cycle detection)

        Returns:
            Total number of users processed
        """
        if visited is None:
            visited = set()

        if _depth > max_depth:
            return 0

        if start_user.userID in visited:
            logger.error(f"Cycle detected in downline at user {start_user.userID}")
            return 0

        visited.add(start_user.userID)

        processed = 0
        for referral in self.get_direct_referrals(start_user):
            if referral.userID in visited:
                logger.error(f"Cycle detected in downline at user {referral.userID}")
                continue

            callback(referral, _depth)
            processed += 1

            processed += self.walk_downline(
                referral,
                callback,
                max_depth,
                visited,
                _depth + 1
            )

        return processed

    def is_in_upline(self, user: User, candidate_id: int, max_depth: int = 50) -> bool:
        """Check whether candidate_id appears in user's referrer chain."""
        found = [False]

        def check(upline_user, depth):
            if upline_user.userID == candidate_id:
                found[0] = True
                return False
            return True

        self.walk_upline(user, check, max_depth)
        return found[0]

    def get_team_by_depth(self, user: User, max_depth: int = MAX_TEAM_DEPTH) -> Dict[int, List[User]]:
        """
        Downline grouped by depth.

        Returns:
            {1: [direct referrals], 2: [...], ...} for every depth up to max_depth
        """
        team: Dict[int, List[User]] = {depth: [] for depth in range(1, max_depth + 1)}

        def collect(downline_user, depth):
            team[depth].append(downline_user)

        self.walk_downline(user, collect, max_depth)
        return team
