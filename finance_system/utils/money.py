# finance_system/utils/money.py
"""
Decimal helpers for money amounts.

Everything is kept at 8 decimal places (the precision of Money columns) and
rounded down so that computed payouts never exceed their source.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any

from finance_system.errors import InvalidAmount

MONEY_PLACES = Decimal("0.00000001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """
    Convert int/str/float/Decimal to Decimal.

    Floats go through str() to avoid binary artefacts.

    Raises:
        InvalidAmount: If value is not numeric or not finite
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"Invalid amount: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"Invalid amount: {value!r}")
    if not result.is_finite():
        raise InvalidAmount(f"Amount must be finite: {value!r}")
    return result


def quantize_money(value: Any) -> Decimal:
    """Round down to ledger precision."""
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_DOWN)


def parse_amount(value: Any) -> Decimal:
    """
    Validate a positive money amount.

    Raises:
        InvalidAmount: If amount is not > 0 at ledger precision
    """
    amount = quantize_money(value)
    if amount <= ZERO:
        raise InvalidAmount(f"Amount must be positive: {value!r}")
    return amount


def percent_of(base: Any, rate: Any) -> Decimal:
    """rate % of base, rounded down."""
    return quantize_money(to_decimal(base) * to_decimal(rate) / HUNDRED)


def to_json_safe(value: Any) -> Any:
    """Make metadata/summaries storable in a JSON column."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value
