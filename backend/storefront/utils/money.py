# storefront/utils/money.py

from decimal import ROUND_HALF_UP, Decimal

Money = Decimal

ZERO = Decimal("0.00")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_minor_units(x) -> int:
    """Major units (e.g. 12.34 LKR) to the processor's integer minor units (1234)."""
    return int((D(x) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_float(x) -> float:
    return float(round_money(x))
