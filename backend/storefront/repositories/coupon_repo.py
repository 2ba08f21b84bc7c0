from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from storefront.models.coupon import Coupon


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class CouponRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active_by_code(self, code: str) -> Optional[Coupon]:
        return (
            self.db.query(Coupon)
            .filter(Coupon.code == normalize_code(code), Coupon.is_active == True)
            .first()
        )

    def get_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()

    def redeem(self, coupon_id: int) -> bool:
        """
        Consume one use of the coupon.

        A single guarded UPDATE: the usage limit is checked by the database in the
        same statement that increments, so two checkouts racing for the last use
        cannot both succeed. Returns False when no row qualified (limit reached or
        coupon deactivated meanwhile).
        """
        stmt = (
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                Coupon.is_active == True,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
            )
            .values(
                usage_count=Coupon.usage_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount == 1

    def force_redeem(self, coupon_id: int):
        """Increment regardless of the limit. Only used once money has already been captured."""
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(
                usage_count=Coupon.usage_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.flush()
