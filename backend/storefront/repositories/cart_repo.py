from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from storefront.models.cart_item import CartItem
from storefront.models.catalog import ProductOffer


class CartRepository:
    """All queries are scoped by session token; nothing here crosses sessions."""

    def __init__(self, db: Session):
        self.db = db

    def list_lines(self, session_token: str) -> List[CartItem]:
        return (
            self.db.query(CartItem)
            .options(joinedload(CartItem.offer).joinedload(ProductOffer.product))
            .filter(CartItem.session_token == session_token)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
            .all()
        )

    def get_line(self, session_token: str, line_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.id == line_id, CartItem.session_token == session_token)
            .first()
        )

    def get_line_for_offer(self, session_token: str, offer_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.session_token == session_token, CartItem.offer_id == offer_id)
            .first()
        )

    def add_or_increment(self, session_token: str, offer_id: int, qty: int) -> CartItem:
        item = self.get_line_for_offer(session_token, offer_id)
        if item is None:
            try:
                # another request may insert the same line after the lookup
                with self.db.begin_nested():
                    item = CartItem(session_token=session_token, offer_id=offer_id, quantity=qty)
                    self.db.add(item)
                    self.db.flush()
                return item
            except IntegrityError:
                item = self.get_line_for_offer(session_token, offer_id)
                if item is None:
                    raise
        item.quantity = item.quantity + qty
        item.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return item

    def set_quantity(self, item: CartItem, qty: int) -> CartItem:
        item.quantity = qty
        item.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return item

    def remove_line(self, item: CartItem):
        self.db.delete(item)
        self.db.flush()

    def clear(self, session_token: str) -> int:
        deleted = (
            self.db.query(CartItem)
            .filter(CartItem.session_token == session_token)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted

    def count_items(self, session_token: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(CartItem.quantity), 0))
            .filter(CartItem.session_token == session_token)
            .scalar()
        )
        return int(total or 0)
