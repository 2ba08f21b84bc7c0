from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.errors import InvalidStatusTransition, OrderNotFound, ValidationFailed
from storefront.models.order import Order, OrderStatus, PaymentMethod
from storefront.repositories.order_repo import OrderRepository
from storefront.utils.log import get_logger
from storefront.utils.money import D, ZERO, to_float
from storefront.utils.transactions import smart_transaction

log = get_logger("orders")

# Admin-driven moves. Card payments are created directly in PROCESSING.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PROCESSING.value: {OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}

# only these count as money in
REVENUE_STATUSES = (OrderStatus.PROCESSING.value, OrderStatus.COMPLETED.value)


def is_already_paid(order: Order) -> bool:
    """A payment link whose order was settled (or had a method chosen) is shown as done."""
    return (
        order.status == OrderStatus.COMPLETED.value
        or order.payment_method != PaymentMethod.PENDING.value
    )


def order_to_dict(order: Order) -> Dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_contact": order.customer_contact,
        "customer_country": order.customer_country,
        "subtotal": to_float(order.subtotal),
        "discount_amount": to_float(order.discount_amount),
        "coupon_code": order.coupon_code,
        "total_amount": to_float(order.total_amount),
        "currency": order.currency,
        "status": order.status,
        "payment_method": order.payment_method,
        "items": list(order.items or []),
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


def _naive(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None) if dt.tzinfo else dt


class OrderLedger:
    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository(db)

    def get_by_number(self, order_number: str) -> Order:
        order = self.repo.get_by_number(order_number)
        if not order:
            raise OrderNotFound("Order not found")
        return order

    def get_by_payment_token(self, token: str) -> Order:
        order = self.repo.get_by_payment_token(token) if token else None
        if not order:
            raise OrderNotFound("Order not found")
        return order

    def payment_link_view(self, token: str) -> Dict:
        order = self.get_by_payment_token(token)
        return {"order": order_to_dict(order), "already_paid": is_already_paid(order)}

    def list_orders(
        self,
        status: Optional[str] = None,
        email: Optional[str] = None,
        order_number: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        return self.repo.list(
            status=status, email=email, order_number=order_number, limit=limit, offset=offset
        )

    def transition(self, order_number: str, new_status: str) -> Order:
        if new_status not in ALLOWED_TRANSITIONS:
            raise ValidationFailed(f"Unknown status: {new_status}")
        order = self.get_by_number(order_number)
        if order.status == new_status:
            return order
        if new_status not in ALLOWED_TRANSITIONS.get(order.status, set()):
            raise InvalidStatusTransition(
                f"Cannot move order from {order.status} to {new_status}",
                current_status=order.status,
            )
        with smart_transaction(self.db):
            previous = order.status
            order.status = new_status
            order.updated_at = datetime.now(timezone.utc)
            self.db.flush()
        self.db.commit()
        log.info("order %s: %s -> %s", order.order_number, previous, new_status)
        return order

    def delete_order(self, order_number: str):
        order = self.get_by_number(order_number)
        self.repo.delete(order)
        self.db.commit()
        log.info("order %s deleted", order_number)

    def statistics(self, now: Optional[datetime] = None) -> Dict:
        """Dashboard figures. Revenue only counts processing and completed orders."""
        now = _naive(now or datetime.now(timezone.utc))
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_week = now - timedelta(days=7)
        start_of_month = start_of_today.replace(day=1)

        orders = self.repo.list_since()
        valid = [o for o in orders if o.status in REVENUE_STATUSES]

        def _revenue(rows):
            return sum((D(o.total_amount) for o in rows), ZERO)

        def _since(rows, start):
            return [o for o in rows if o.created_at and _naive(o.created_at) >= start]

        by_status: Dict[str, Dict] = {}
        for o in orders:
            entry = by_status.setdefault(o.status or "unknown", {"count": 0, "revenue": ZERO})
            entry["count"] += 1
            if o.status in REVENUE_STATUSES:
                entry["revenue"] += D(o.total_amount)

        by_method: Dict[str, Dict] = {}
        customers: Dict[str, Dict] = {}
        days = OrderedDict(
            ((start_of_today - timedelta(days=i)).date().isoformat(), {"orders": 0, "revenue": ZERO})
            for i in range(29, -1, -1)
        )
        for o in valid:
            m = by_method.setdefault(o.payment_method or "unknown", {"count": 0, "revenue": ZERO})
            m["count"] += 1
            m["revenue"] += D(o.total_amount)

            c = customers.setdefault(
                o.customer_email or "unknown",
                {"name": o.customer_name or "Unknown", "orders": 0, "revenue": ZERO},
            )
            c["orders"] += 1
            c["revenue"] += D(o.total_amount)

            day = _naive(o.created_at).date().isoformat() if o.created_at else None
            if day in days:
                days[day]["orders"] += 1
                days[day]["revenue"] += D(o.total_amount)

        total_revenue = _revenue(valid)
        top_customers = sorted(customers.items(), key=lambda kv: kv[1]["revenue"], reverse=True)[:5]

        return {
            "total_orders": len(orders),
            "total_revenue": to_float(total_revenue),
            "average_order_value": to_float(total_revenue / len(valid)) if valid else 0.0,
            "orders_today": len(_since(orders, start_of_today)),
            "orders_this_week": len(_since(orders, start_of_week)),
            "orders_this_month": len(_since(orders, start_of_month)),
            "revenue_today": to_float(_revenue(_since(valid, start_of_today))),
            "revenue_this_week": to_float(_revenue(_since(valid, start_of_week))),
            "revenue_this_month": to_float(_revenue(_since(valid, start_of_month))),
            "orders_by_status": [
                {"status": k, "count": v["count"], "revenue": to_float(v["revenue"])}
                for k, v in by_status.items()
            ],
            "orders_by_payment_method": [
                {"method": k, "count": v["count"], "revenue": to_float(v["revenue"])}
                for k, v in by_method.items()
            ],
            "top_customers": [
                {"name": v["name"], "email": k, "orders": v["orders"], "revenue": to_float(v["revenue"])}
                for k, v in top_customers
            ],
            "sales_by_day": [
                {"date": d, "orders": v["orders"], "revenue": to_float(v["revenue"])}
                for d, v in days.items()
            ],
        }
