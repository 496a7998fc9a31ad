"""
Affiliate commission rate tables.

Daily table is indexed [referrer level][referral level]; first purchase
table is indexed [referrer level][purchased plan level]. Defaults below,
JSON overrides via Config (DAILY_COMMISSION_RATES / FIRST_PURCHASE_COMMISSION_RATES):

    {"1": {"1": {"type": "fixed", "value": 0.01}, "2": {"type": "percentage", "value": 0.1}}}
"""
from dataclasses import dataclass
from enum import Enum
from decimal import Decimal
from typing import Dict, Optional, Any
import logging

from finance_system.errors import RateNotConfigured
from finance_system.utils.money import ZERO, percent_of, quantize_money, to_decimal

logger = logging.getLogger(__name__)


class RateType(Enum):
    """How a rate cell turns into money."""
    FIXED = "fixed"  # flat amount per referral per day
    PERCENTAGE = "percentage"  # % of the qualifying amount


@dataclass(frozen=True)
class CommissionRate:
    rateType: RateType
    value: Decimal

    def asDict(self) -> Dict[str, Any]:
        return {"type": self.rateType.value, "value": str(self.value)}


RateTable = Dict[int, Dict[int, CommissionRate]]

AFFILIATE_LEVELS = (1, 2, 3, 4)


def _fixed(value: str) -> CommissionRate:
    return CommissionRate(RateType.FIXED, Decimal(value))


def _pct(value: str) -> CommissionRate:
    return CommissionRate(RateType.PERCENTAGE, Decimal(value))


DEFAULT_DAILY_RATES: RateTable = {
    1: {1: _fixed("0.01"), 2: _pct("0.1"), 3: _pct("0.5"), 4: _pct("1.0")},
    2: {1: _fixed("0.02"), 2: _pct("0.2"), 3: _pct("1.0"), 4: _pct("1.5")},
    3: {1: _fixed("0.03"), 2: _pct("0.3"), 3: _pct("1.5"), 4: _pct("2.0")},
    4: {1: _fixed("0.05"), 2: _pct("0.5"), 3: _pct("2.0"), 4: _pct("3.0")},
}

# Percent of the first investment amount
DEFAULT_FIRST_PURCHASE_RATES: RateTable = {
    1: {1: _pct("2.0"), 2: _pct("3.0"), 3: _pct("4.0"), 4: _pct("5.0")},
    2: {1: _pct("3.0"), 2: _pct("4.0"), 3: _pct("5.0"), 4: _pct("6.0")},
    3: {1: _pct("4.0"), 2: _pct("5.0"), 3: _pct("6.0"), 4: _pct("7.0")},
    4: {1: _pct("5.0"), 2: _pct("6.0"), 3: _pct("7.0"), 4: _pct("8.0")},
}


def parse_rate_table(raw: Dict[str, Any]) -> RateTable:
    """
    Convert a JSON rate table into CommissionRate cells.

    Invalid cells are skipped with an error, which makes them
    RateNotConfigured at lookup time.
    """
    table: RateTable = {}

    for referrer_key, row in raw.items():
        try:
            referrer_level = int(referrer_key)
        except (TypeError, ValueError):
            logger.error(f"Invalid referrer level in rate table: {referrer_key!r}")
            continue

        for referral_key, cell in row.items():
            try:
                table.setdefault(referrer_level, {})[int(referral_key)] = CommissionRate(
                    RateType(cell["type"]),
                    to_decimal(cell["value"])
                )
            except (KeyError, ValueError, TypeError, ArithmeticError) as e:
                logger.error(
                    f"Invalid rate cell [{referrer_key}][{referral_key}]: {cell!r} ({e})"
                )

    return table


# Lazy-loaded configuration cache
_RATE_CACHE: Dict[str, RateTable] = {}


def _load_table(config_key: str, default: RateTable) -> RateTable:
    from config import Config

    if config_key not in _RATE_CACHE:
        raw = Config.get(config_key)
        if raw:
            _RATE_CACHE[config_key] = parse_rate_table(raw)
            logger.info(f"Loaded {config_key} from configuration")
        else:
            _RATE_CACHE[config_key] = default
    return _RATE_CACHE[config_key]


def get_daily_rates() -> RateTable:
    """Daily affiliate rate table (configured or default)."""
    from config import Config
    return _load_table(Config.DAILY_COMMISSION_RATES, DEFAULT_DAILY_RATES)


def get_first_purchase_rates() -> RateTable:
    """First purchase rate table (configured or default)."""
    from config import Config
    return _load_table(Config.FIRST_PURCHASE_COMMISSION_RATES, DEFAULT_FIRST_PURCHASE_RATES)


def reset_rate_cache() -> None:
    """Drop cached tables, next lookup re-reads Config."""
    _RATE_CACHE.clear()


def get_rate(table: RateTable, referrerLevel: int, referralLevel: int) -> CommissionRate:
    """
    Look up one cell.

    Raises:
        RateNotConfigured: If the cell is missing
    """
    rate: Optional[CommissionRate] = table.get(referrerLevel, {}).get(referralLevel)
    if rate is None:
        raise RateNotConfigured(referrerLevel, referralLevel)
    return rate


def calculate_reward_amount(rate: CommissionRate, baseAmount) -> Decimal:
    """
    Money produced by one cell.

    Fixed cells pay their value regardless of the base; percentage cells
    pay value % of the base.
    """
    if rate.rateType is RateType.FIXED:
        return quantize_money(rate.value)
    if not baseAmount or to_decimal(baseAmount) <= ZERO:
        return ZERO
    return percent_of(baseAmount, rate.value)
