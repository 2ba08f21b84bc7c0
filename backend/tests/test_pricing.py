from decimal import Decimal

from storefront.services.cart_service import SnapshotLine
from storefront.services.coupon_service import AppliedCoupon
from storefront.services.pricing import compute_subtotal, compute_totals


def _line(offer_id, price, qty, category_id=1):
    return SnapshotLine(
        line_id=offer_id,
        offer_id=offer_id,
        product_id=offer_id,
        category_id=category_id,
        title=f"Offer {offer_id}",
        price=Decimal(price),
        quantity=qty,
        is_available=True,
    )


def _applied(amount):
    return AppliedCoupon(
        code="X",
        discount_type="fixed",
        discount_value=Decimal(amount),
        max_discount_amount=None,
        discount_amount=Decimal(amount),
    )


def test_subtotal_is_sum_of_lines_in_any_order():
    lines = [_line(1, "19.99", 3), _line(2, "0.01", 7), _line(3, "250.50", 1)]
    expected = Decimal("19.99") * 3 + Decimal("0.01") * 7 + Decimal("250.50")
    assert compute_subtotal(lines) == expected
    assert compute_subtotal(list(reversed(lines))) == expected


def test_empty_cart_totals_zero():
    totals = compute_totals([])
    assert totals.subtotal == Decimal("0.00")
    assert totals.total == Decimal("0.00")


def test_total_is_subtotal_minus_discount():
    totals = compute_totals([_line(1, "400", 2), _line(2, "100", 1)], _applied("50"))
    assert totals.subtotal == Decimal("900.00")
    assert totals.discount_amount == Decimal("50.00")
    assert totals.total == Decimal("850.00")


def test_total_never_negative_but_discount_kept():
    totals = compute_totals([_line(1, "200", 1)], _applied("300"))
    assert totals.discount_amount == Decimal("300.00")
    assert totals.total == Decimal("0.00")


def test_totals_rounded_to_cents():
    totals = compute_totals([_line(1, "10.005", 1)])
    assert totals.subtotal == Decimal("10.01")
