from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.db import Base


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        # one line per offer per session; re-adding increments quantity
        UniqueConstraint("session_token", "offer_id", name="uq_cart_items_session_offer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_token = Column(String(64), nullable=False, index=True)
    offer_id = Column(
        Integer, ForeignKey("product_offers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    offer = relationship("ProductOffer")
