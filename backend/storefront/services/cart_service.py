import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from storefront.errors import CartLineNotFound, OfferNotFound, OfferUnavailable, ValidationFailed
from storefront.models.cart_item import CartItem
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.catalog_repo import CatalogRepository
from storefront.utils.log import get_logger
from storefront.utils.money import D

log = get_logger("cart")


@dataclass(frozen=True)
class CartSession:
    """
    Anonymous browsing session that owns a set of cart lines.

    Passed explicitly to every cart operation. The token is minted by the client
    (or by ``new()``) and never expires on the server.
    """

    token: str

    @classmethod
    def new(cls) -> "CartSession":
        return cls(token=uuid.uuid4().hex)

    @classmethod
    def from_token(cls, token: Optional[str]) -> "CartSession":
        token = (token or "").strip()
        if not token:
            return cls.new()
        if len(token) > 64:
            raise ValidationFailed("Invalid cart session")
        return cls(token=token)


@dataclass(frozen=True)
class SnapshotLine:
    line_id: int
    offer_id: int
    product_id: int
    category_id: Optional[int]
    title: str
    price: Decimal
    quantity: int
    is_available: bool
    image_url: Optional[str] = None


@dataclass(frozen=True)
class CartSnapshot:
    """The (offer, quantity) pairs of one session as read at one instant."""

    session_token: str
    lines: List[SnapshotLine] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.lines

    def __iter__(self):
        return iter(self.lines)

    def __len__(self):
        return len(self.lines)


def _snapshot_line(item: CartItem) -> SnapshotLine:
    offer = item.offer
    product = offer.product
    return SnapshotLine(
        line_id=item.id,
        offer_id=offer.id,
        product_id=offer.product_id,
        category_id=product.category_id if product is not None else None,
        title=offer.title,
        price=D(offer.price),
        quantity=item.quantity,
        is_available=bool(offer.is_available) and (product is None or bool(product.is_active)),
        image_url=offer.image_url,
    )


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.catalog = CatalogRepository(db)

    def add_item(self, session: CartSession, offer_id: int, qty: int = 1) -> CartItem:
        if qty is None or int(qty) < 1:
            raise ValidationFailed("Quantity must be at least 1")
        offer = self.catalog.get_offer(offer_id)
        if not offer:
            raise OfferNotFound("Offer not found")
        if not offer.is_available:
            raise OfferUnavailable(f"{offer.title} is not available")

        existing = self.cart_repo.get_line_for_offer(session.token, offer.id)
        wanted = int(qty) + (existing.quantity if existing else 0)
        if wanted > (offer.stock_count or 0):
            raise OfferUnavailable(
                f"Only {offer.stock_count} of {offer.title} in stock", stock_count=offer.stock_count
            )

        item = self.cart_repo.add_or_increment(session.token, offer.id, int(qty))
        self.db.commit()
        log.debug("add_item session=%s offer=%s qty=%s", session.token, offer.id, qty)
        return item

    def update_quantity(self, session: CartSession, line_id: int, qty: int) -> CartItem:
        if qty is None or int(qty) < 1:
            raise ValidationFailed("Quantity must be at least 1")
        item = self.cart_repo.get_line(session.token, line_id)
        if not item:
            raise CartLineNotFound("Cart item not found")
        # last write wins; no version check across tabs
        self.cart_repo.set_quantity(item, int(qty))
        self.db.commit()
        return item

    def remove_item(self, session: CartSession, line_id: int):
        item = self.cart_repo.get_line(session.token, line_id)
        if not item:
            raise CartLineNotFound("Cart item not found")
        self.cart_repo.remove_line(item)
        self.db.commit()

    def clear(self, session: CartSession) -> int:
        deleted = self.cart_repo.clear(session.token)
        self.db.commit()
        return deleted

    def count(self, session: CartSession) -> int:
        return self.cart_repo.count_items(session.token)

    def get_lines(self, session: CartSession) -> List[CartItem]:
        return self.cart_repo.list_lines(session.token)

    def snapshot(self, session: CartSession) -> CartSnapshot:
        lines = [_snapshot_line(it) for it in self.cart_repo.list_lines(session.token)]
        return CartSnapshot(session_token=session.token, lines=lines)
