import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, Numeric, String

from storefront.db import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    PENDING = "pending"  # admin-created order waiting for the customer to pick a method
    BANK_TRANSFER = "bank_transfer"
    STRIPE = "stripe"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_contact = Column(String(64), nullable=True)
    customer_country = Column(String(64), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    coupon_code = Column(String(64), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="lkr")

    status = Column(String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_method = Column(String(32), nullable=False, default=PaymentMethod.PENDING.value)
    payment_token = Column(String(64), unique=True, nullable=False, index=True)
    payment_intent_id = Column(String(128), unique=True, nullable=True)

    # frozen [{id, name, quantity, price}] - never re-read from the catalog
    items = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<Order {self.order_number} status={self.status} total={self.total_amount}>"
