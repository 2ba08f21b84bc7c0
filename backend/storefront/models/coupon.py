import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text

from storefront.db import Base


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ApplicableTo(str, enum.Enum):
    ALL = "all"
    CATEGORY = "category"
    PRODUCT = "product"


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, nullable=False, index=True)  # stored upper-cased
    description = Column(Text, nullable=True)

    discount_type = Column(String(16), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    min_purchase_amount = Column(Numeric(12, 2), nullable=True)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)  # caps percentage discounts only

    # naive UTC; NULL leaves that side of the window open
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)

    usage_limit = Column(Integer, nullable=True)  # NULL = unlimited
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    applicable_to = Column(String(16), nullable=False, default=ApplicableTo.ALL.value)
    category_ids = Column(JSON, nullable=False, default=list)
    product_ids = Column(JSON, nullable=False, default=list)  # offer ids

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<Coupon code={self.code} {self.discount_type}={self.discount_value}>"
