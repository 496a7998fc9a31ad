# finance_system/services/plan_service.py
"""
Investment plan catalogue - admin maintenance and level-based listing.
"""
from typing import Dict, List, Optional, Any
from sqlalchemy.orm import Session
import logging

from models.investment_plan import InvestmentPlan
from finance_system.errors import NotFound, InvalidAmount, InvalidLevel
from finance_system.utils.money import ZERO, quantize_money, to_decimal

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'name', 'description', 'minAmount', 'maxAmount', 'durationInDays',
    'returnRate', 'dailyIncome', 'isFixedDeposit', 'features', 'minLevel',
    'isActive', 'isFeatured',
)


class PlanService:
    """Service for investment plans."""

    def __init__(self, session: Session):
        self.session = session

    def getPlan(self, planId: int) -> InvestmentPlan:
        """
        Raises:
            NotFound: If plan does not exist
        """
        plan = self.session.get(InvestmentPlan, planId)
        if not plan:
            raise NotFound(f"Investment plan {planId} not found")
        return plan

    def getActivePlans(self) -> List[InvestmentPlan]:
        return self.session.query(InvestmentPlan).filter(
            InvestmentPlan.isActive.is_(True)
        ).order_by(InvestmentPlan.minLevel, InvestmentPlan.minAmount).all()

    def getPlansForLevel(self, level: int) -> List[InvestmentPlan]:
        """Active plans a user of `level` may buy."""
        return self.session.query(InvestmentPlan).filter(
            InvestmentPlan.isActive.is_(True),
            InvestmentPlan.minLevel <= max(level or 0, 1)
        ).order_by(InvestmentPlan.minLevel, InvestmentPlan.minAmount).all()

    @staticmethod
    def _validate(data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize and validate plan fields.

        Raises:
            InvalidAmount: Bad bounds or rates
            InvalidLevel: minLevel outside 1..4
            ValueError: Bad duration or missing yield
        """
        clean = dict(data)

        for key in ('minAmount', 'maxAmount', 'returnRate', 'dailyIncome'):
            if clean.get(key) is not None:
                clean[key] = quantize_money(clean[key])
                if clean[key] < ZERO:
                    raise InvalidAmount(f"{key} cannot be negative")

        if clean.get('minAmount') is not None and clean['minAmount'] <= ZERO:
            raise InvalidAmount("minAmount must be positive")

        if (clean.get('maxAmount') is not None and clean.get('minAmount') is not None
                and clean['maxAmount'] < clean['minAmount']):
            raise InvalidAmount("maxAmount must not be below minAmount")

        if 'durationInDays' in clean and int(clean['durationInDays']) < 1:
            raise ValueError("durationInDays must be at least 1")

        if 'minLevel' in clean and not 1 <= int(clean['minLevel']) <= 4:
            raise InvalidLevel(f"minLevel must be between 1 and 4, got {clean['minLevel']}")

        return clean

    @staticmethod
    def _checkYield(plan: InvestmentPlan) -> None:
        if plan.isFixedDeposit:
            if plan.returnRate is None or to_decimal(plan.returnRate) <= ZERO:
                raise InvalidAmount("Fixed deposit plans need a positive returnRate")
        elif plan.dailyIncome is None or to_decimal(plan.dailyIncome) <= ZERO:
            raise InvalidAmount("Running yield plans need a positive dailyIncome")

    async def createPlan(self, **data) -> InvestmentPlan:
        unknown = set(data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown plan fields: {', '.join(sorted(unknown))}")

        for required in ('name', 'minAmount', 'durationInDays'):
            if data.get(required) in (None, ''):
                raise ValueError(f"{required} is required")

        clean = self._validate(data)
        clean.setdefault('minLevel', 1)
        clean.setdefault('isFixedDeposit', False)

        plan = InvestmentPlan(**clean)
        self._checkYield(plan)

        self.session.add(plan)
        self.session.flush()

        logger.info(f"Plan created: {plan.name} (planID={plan.planID}, minLevel={plan.minLevel})")
        return plan

    async def updatePlan(self, planId: int, **changes) -> InvestmentPlan:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown plan fields: {', '.join(sorted(unknown))}")

        plan = self.getPlan(planId)
        merged = {field: getattr(plan, field) for field in ('minAmount', 'maxAmount')}
        merged.update(changes)
        clean = self._validate(merged)

        for field in changes:
            setattr(plan, field, clean[field])
        self._checkYield(plan)

        self.session.flush()
        logger.info(f"Plan {planId} updated: {', '.join(sorted(changes))}")
        return plan

    async def deactivatePlan(self, planId: int) -> InvestmentPlan:
        """Hide plan from new purchases; running investments are unaffected."""
        plan = self.getPlan(planId)
        plan.isActive = False
        self.session.flush()
        logger.info(f"Plan {planId} deactivated")
        return plan

    @staticmethod
    def describe(plan: InvestmentPlan) -> Dict[str, Optional[Any]]:
        return {
            "planID": plan.planID,
            "name": plan.name,
            "description": plan.description,
            "minAmount": plan.minAmount,
            "maxAmount": plan.maxAmount,
            "durationInDays": plan.durationInDays,
            "isFixedDeposit": plan.isFixedDeposit,
            "returnRate": plan.returnRate,
            "dailyIncome": plan.dailyIncome,
            "minLevel": plan.minLevel,
            "features": plan.features or [],
            "isFeatured": plan.isFeatured,
        }
