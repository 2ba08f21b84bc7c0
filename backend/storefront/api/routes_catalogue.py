from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.db import get_db
from storefront.errors import OfferNotFound
from storefront.repositories.catalog_repo import CatalogRepository
from storefront.schemas.offer_schema import OfferOut

router = APIRouter(tags=["catalogue"])


@router.get("", summary="List available offers")
def list_offers(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    repo = CatalogRepository(db)
    items = repo.list_offers(available_only=True, page=page, size=size)
    return {"items": [OfferOut.model_validate(o).model_dump() for o in items]}


@router.get("/{offer_id}", summary="Get offer by id")
def get_offer(offer_id: int, db: Session = Depends(get_db)):
    repo = CatalogRepository(db)
    o = repo.get_offer(offer_id)
    if not o:
        raise OfferNotFound("Offer not found")
    return OfferOut.model_validate(o).model_dump()
