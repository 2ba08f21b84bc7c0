from typing import List, Optional

from pydantic import BaseModel, Field

from storefront.services.order_service import CustomerInfo


class CustomerIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    contact: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)

    def to_info(self) -> CustomerInfo:
        return CustomerInfo(
            full_name=self.full_name, email=self.email, contact=self.contact, country=self.country
        )


class BankTransferCheckoutIn(BaseModel):
    customer: CustomerIn
    coupon_code: Optional[str] = None


class CardCheckoutIn(BaseModel):
    customer: CustomerIn
    coupon_code: Optional[str] = None
    payment_intent_id: str = Field(..., min_length=1)


class CheckoutIntentIn(BaseModel):
    coupon_code: Optional[str] = None


class CreatePaymentIntentIn(BaseModel):
    # amount <= 0 is rejected by the broker as 400 {error}
    amount: Optional[float] = None
    currency: str = "lkr"


class LinkCardPaymentIn(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


class AdminOrderItemIn(BaseModel):
    offer_id: int
    quantity: int = Field(1, ge=1)


class AdminCustomerIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    contact: str = ""
    country: str = ""


class AdminCreateOrderIn(BaseModel):
    customer: AdminCustomerIn
    items: List[AdminOrderItemIn]


class StatusUpdateIn(BaseModel):
    status: str
