# shared/utils/money.py
"""
Decimal helpers for monetary amounts (2 fraction digits).
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value) -> Decimal:
    """Coerce a number, string or None into a 2-place Decimal."""
    if value is None or value == '':
        return ZERO
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid monetary amount: {value!r}")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount, percentage) -> Decimal:
    """Return `percentage` percent of `amount`, rounded to cents."""
    return to_money(to_money(amount) * Decimal(str(percentage)) / Decimal('100'))
