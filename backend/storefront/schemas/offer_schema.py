# backend/storefront/schemas/offer_schema.py
from typing import Optional

from pydantic import BaseModel, ConfigDict


class OfferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: int
    title: str
    price: float
    stock_count: int
    is_available: bool
    image_url: Optional[str] = None
