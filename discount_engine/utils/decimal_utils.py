# discount_engine/utils/decimal_utils.py
from decimal import Decimal, ROUND_HALF_UP

from discount_engine.core.config import PRICE_DECIMAL_PLACES

ZERO = Decimal("0")
HUNDRED = Decimal("100")
MONEY_QUANTUM = Decimal(1).scaleb(-PRICE_DECIMAL_PLACES)


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO
