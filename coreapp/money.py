"""
Currency-safe arithmetic shared by pricing, proration, refunds and settlement.

Every amount is a Decimal; floats never enter a money computation.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal('0.00')
CENT = Decimal('0.01')
HUNDRED = Decimal('100')


def to_decimal(value, default=ZERO):
    """Convert value to Decimal, falling back to default when it cannot be parsed"""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default


def quantize(value):
    """Round to cents using HALF_UP"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def multiply(amount, factor):
    return quantize(to_decimal(amount) * to_decimal(factor))


def percentage_of(amount, percent):
    """Return percent% of amount, e.g. percentage_of(600, 15) == 90.00"""
    return quantize(to_decimal(amount) * to_decimal(percent) / HUNDRED)


def clamp(value, minimum, maximum):
    value = to_decimal(value)
    if minimum is not None and value < minimum:
        value = to_decimal(minimum)
    if maximum is not None and value > maximum:
        value = to_decimal(maximum)
    return value


def sum_amounts(*values):
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return quantize(total)
