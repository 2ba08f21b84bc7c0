from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from storefront.models.catalog import Product, ProductOffer


class CatalogRepository:
    """Read-only access to offers. The core never writes catalog rows."""

    def __init__(self, db: Session):
        self.db = db

    def get_offer(self, offer_id: int) -> Optional[ProductOffer]:
        return (
            self.db.query(ProductOffer)
            .options(joinedload(ProductOffer.product))
            .filter(ProductOffer.id == offer_id)
            .first()
        )

    def get_offers_by_ids(self, ids: Iterable[int]) -> List[ProductOffer]:
        ids = list({int(i) for i in ids})
        if not ids:
            return []
        return (
            self.db.query(ProductOffer)
            .options(joinedload(ProductOffer.product))
            .filter(ProductOffer.id.in_(ids))
            .all()
        )

    def list_offers(
        self, available_only: bool = True, page: int = 1, size: int = 20
    ) -> List[ProductOffer]:
        query = self.db.query(ProductOffer).join(Product).filter(Product.is_active == True)
        if available_only:
            query = query.filter(ProductOffer.is_available == True)
        return (
            query.order_by(ProductOffer.title)
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
