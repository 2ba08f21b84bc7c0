# backend/storefront/schemas/cart_schema.py
from pydantic import BaseModel, Field


class AddItemIn(BaseModel):
    offer_id: int
    quantity: int = Field(1, ge=1)


class UpdateQuantityIn(BaseModel):
    quantity: int = Field(..., ge=1)


class ApplyCouponIn(BaseModel):
    code: str
