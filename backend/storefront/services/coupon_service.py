from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from storefront.errors import CouponError, ValidationFailed
from storefront.models.coupon import ApplicableTo, Coupon, DiscountType
from storefront.repositories.coupon_repo import CouponRepository, normalize_code
from storefront.utils.log import get_logger
from storefront.utils.money import D, ZERO, round_money

log = get_logger("coupons")


@dataclass(frozen=True)
class AppliedCoupon:
    """Result of a successful evaluation. Only discount_amount flows into checkout."""

    code: str
    discount_type: str
    discount_value: Decimal
    max_discount_amount: Optional[Decimal]
    discount_amount: Decimal
    coupon_id: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": float(self.discount_value),
            "max_discount_amount": (
                float(self.max_discount_amount) if self.max_discount_amount is not None else None
            ),
            "discount_amount": float(self.discount_amount),
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def compute_discount(coupon: Coupon, subtotal) -> Decimal:
    """
    percentage: subtotal * value / 100, capped by max_discount_amount when one is set.
    fixed: the face value, even when it exceeds the subtotal (the total is clamped later).
    """
    value = D(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = D(subtotal) * value / Decimal(100)
        cap = coupon.max_discount_amount
        if cap is not None and D(cap) > ZERO and discount > D(cap):
            discount = D(cap)
    else:
        discount = value
    return round_money(discount)


def _matches_scope(coupon: Coupon, lines: Iterable) -> bool:
    scope = coupon.applicable_to or ApplicableTo.ALL.value
    if scope == ApplicableTo.CATEGORY.value:
        wanted = {str(c) for c in (coupon.category_ids or [])}
        return any(
            line.category_id is not None and str(line.category_id) in wanted for line in lines
        )
    if scope == ApplicableTo.PRODUCT.value:
        wanted = {str(p) for p in (coupon.product_ids or [])}
        return any(str(line.offer_id) in wanted for line in lines)
    return True


class CouponEvaluator:
    """
    Validates a code against a cart snapshot. Read-only: evaluating (or applying) a
    coupon any number of times never consumes a use; redemption happens when the
    order is written.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CouponRepository(db)

    def evaluate(
        self,
        code: str,
        lines: Iterable,
        subtotal,
        now: Optional[datetime] = None,
        captured: bool = False,
    ) -> AppliedCoupon:
        """
        ``captured=True`` prices a coupon for a payment the processor has already
        taken: the code still has to exist and fit the cart, but an inactive
        coupon, its validity window and its usage limit no longer reject it.
        """
        if not normalize_code(code):
            raise ValidationFailed("Please enter a coupon code")
        lines = list(lines)
        now = _naive_utc(now) or utcnow()

        coupon = self.repo.get_by_code(code) if captured else self.repo.get_active_by_code(code)
        if not coupon:
            raise self._reject(code, CouponError.NOT_FOUND, "Invalid coupon code")
        if not captured:
            self._check_window_and_limit(code, coupon, now)

        minimum = coupon.min_purchase_amount
        if minimum is not None and D(subtotal) < D(minimum):
            raise self._reject(
                code,
                CouponError.BELOW_MINIMUM,
                f"Minimum purchase amount of Rs. {round_money(minimum)} required",
            )

        if not _matches_scope(coupon, lines):
            raise self._reject(
                code,
                CouponError.NOT_APPLICABLE,
                "This coupon is not applicable to items in your cart",
            )

        return AppliedCoupon(
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=D(coupon.discount_value),
            max_discount_amount=(
                D(coupon.max_discount_amount) if coupon.max_discount_amount is not None else None
            ),
            discount_amount=compute_discount(coupon, subtotal),
            coupon_id=coupon.id,
        )

    def _check_window_and_limit(self, code: str, coupon: Coupon, now: datetime):
        valid_from = _naive_utc(coupon.valid_from)
        valid_until = _naive_utc(coupon.valid_until)
        if valid_from is not None and now < valid_from:
            raise self._reject(code, CouponError.NOT_YET_ACTIVE, "This coupon is not yet active")
        if valid_until is not None and now > valid_until:
            raise self._reject(code, CouponError.EXPIRED, "This coupon has expired")
        if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
            raise self._reject(
                code, CouponError.LIMIT_REACHED, "This coupon has reached its usage limit"
            )

    def _reject(self, code: str, reason: str, message: str) -> CouponError:
        log.info("coupon %r rejected: %s", normalize_code(code), reason)
        return CouponError(reason, message)
