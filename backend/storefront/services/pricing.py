"""
Price calculator.

Pure functions over a cart snapshot. The cart summary and the order writer both
call ``compute_totals`` so the figure shown to the customer and the figure
persisted are derived the same way, from the snapshot, every time.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from storefront.utils.money import D, ZERO, round_money

if TYPE_CHECKING:
    from storefront.services.coupon_service import AppliedCoupon


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal


def line_total(line) -> Decimal:
    return D(line.price) * int(line.quantity)


def compute_subtotal(lines: Iterable) -> Decimal:
    return round_money(sum((line_total(l) for l in lines), ZERO))


def compute_totals(lines: Iterable, applied_coupon: Optional["AppliedCoupon"] = None) -> Totals:
    subtotal = compute_subtotal(lines)
    discount = round_money(applied_coupon.discount_amount) if applied_coupon else ZERO
    # the total is clamped, never the discount
    total = max(ZERO, subtotal - discount)
    return Totals(subtotal=subtotal, discount_amount=discount, total=round_money(total))
