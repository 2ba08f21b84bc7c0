from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from storefront.models.order import Order, OrderStatus, PaymentMethod


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.order_number == order_number).first()

    def get_by_payment_token(self, token: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.payment_token == token).first()

    def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.payment_intent_id == payment_intent_id).first()

    def list(
        self,
        status: Optional[str] = None,
        email: Optional[str] = None,
        order_number: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        q = self.db.query(Order)
        if status == "awaiting_approval":
            q = q.filter(
                Order.status == OrderStatus.PENDING.value,
                Order.payment_method == PaymentMethod.BANK_TRANSFER.value,
            )
        elif status:
            q = q.filter(Order.status == status)
        if email:
            q = q.filter(Order.customer_email == email)
        if order_number:
            q = q.filter(Order.order_number == order_number)
        return q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()

    def list_since(self, since: Optional[datetime] = None) -> List[Order]:
        q = self.db.query(Order)
        if since is not None:
            q = q.filter(Order.created_at >= since)
        return q.order_by(Order.created_at.desc()).all()

    def delete(self, order: Order):
        self.db.delete(order)
        self.db.flush()
