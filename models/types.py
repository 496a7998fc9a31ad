# investo/models/types.py
"""
Shared column types.

Money is stored as a BIGINT count of 10^-8 units. Balance arithmetic done
in SQL (balance + :amount, balance >= :amount) is then integer arithmetic
on every backend; SQLite would otherwise run DECIMAL columns through
binary floating point.
"""
from decimal import Decimal, ROUND_DOWN

from sqlalchemy import BigInteger, DECIMAL
from sqlalchemy.types import TypeDecorator

MONEY_SCALE = 10 ** 8
MONEY_PLACES = Decimal("0.00000001")


class Money(TypeDecorator):
    """Decimal in Python, scaled integer in the database."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        scaled = Decimal(str(value)) * MONEY_SCALE
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return (Decimal(int(value)) / MONEY_SCALE).quantize(MONEY_PLACES)

    def coerce_compared_value(self, op, value):
        return self


# Amounts, balances and earnings
MoneyType = Money()

# Percentages and flat commission values
RateType = DECIMAL(10, 4)
