# finance_system/services/portfolio_service.py
"""
Read-only projections for user dashboards.
"""
import math
from decimal import Decimal
from typing import Dict, Any, List
from sqlalchemy import func, type_coerce
from sqlalchemy.orm import Session

from models.transaction import Transaction
from models.types import MoneyType
from models.investment import Investment
from models.affiliate_reward import AffiliateReward
from models.wallet import Wallet
from finance_system.services.ledger_service import LedgerService
from finance_system.utils.money import ZERO, quantize_money


def _paginate(query, page: int, perPage: int) -> Dict[str, Any]:
    page = max(int(page or 1), 1)
    perPage = min(max(int(perPage or 10), 1), 100)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * perPage).limit(perPage).all()
    return {
        "items": items,
        "pagination": {
            "currentPage": page,
            "perPage": perPage,
            "totalItems": total,
            "totalPages": math.ceil(total / perPage) if total else 0,
        }
    }


class PortfolioService:
    """Balance, history, investments and rewards of one user."""

    def __init__(self, session: Session):
        self.session = session
        self.ledger = LedgerService(session)

    def getBalance(self, userId: int) -> Dict[str, Any]:
        wallet = self.session.query(Wallet).filter_by(userID=userId).first()
        return {
            "balance": self.ledger.getBalance(userId),
            "currency": wallet.currency if wallet else None,
            "lastUpdated": wallet.lastUpdated if wallet else None,
        }

    def getTransactionHistory(self, userId: int, page: int = 1, perPage: int = 10) -> Dict[str, Any]:
        """Newest first, all statuses."""
        query = self.session.query(Transaction).filter(
            Transaction.userID == userId
        ).order_by(Transaction.createdAt.desc(), Transaction.transactionID.desc())

        result = _paginate(query, page, perPage)
        return {
            "transactions": result["items"],
            "pagination": result["pagination"],
        }

    def getInvestmentSummary(self, userId: int) -> Dict[str, Any]:
        investments: List[Investment] = self.session.query(Investment).filter(
            Investment.userID == userId
        ).order_by(Investment.startDate.desc()).all()

        byStatus: Dict[str, int] = {}
        totalInvested = ZERO
        totalProfit = ZERO
        for investment in investments:
            byStatus[investment.status] = byStatus.get(investment.status, 0) + 1
            totalInvested += Decimal(str(investment.initialAmount))
            totalProfit += Decimal(str(investment.profit or 0))

        return {
            "investments": investments,
            "stats": {
                "count": len(investments),
                "totalInvested": quantize_money(totalInvested),
                "totalProfit": quantize_money(totalProfit),
                "byStatus": byStatus,
            }
        }

    def getAffiliateRewards(self, userId: int, page: int = 1, perPage: int = 10) -> Dict[str, Any]:
        query = self.session.query(AffiliateReward).filter(
            AffiliateReward.referrerID == userId
        ).order_by(AffiliateReward.rewardDate.desc(), AffiliateReward.rewardID.desc())

        total = self.session.query(
            type_coerce(func.coalesce(func.sum(AffiliateReward.amount), 0), MoneyType)
        ).filter(AffiliateReward.referrerID == userId).scalar()

        result = _paginate(query, page, perPage)
        return {
            "rewards": result["items"],
            "totalEarned": quantize_money(total),
            "pagination": result["pagination"],
        }
