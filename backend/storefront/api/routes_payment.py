from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from storefront.api.deps import get_broker, get_cart_session
from storefront.db import get_db
from storefront.schemas.checkout_schema import CheckoutIntentIn, CreatePaymentIntentIn
from storefront.services.cart_service import CartSession
from storefront.services.order_service import OrderWriter
from storefront.services.payment_service import PaymentIntentBroker

router = APIRouter(tags=["payments"])


@router.post("/create-payment-intent", summary="Create a card payment intent for an amount")
def create_payment_intent(
    payload: CreatePaymentIntentIn, broker: PaymentIntentBroker = Depends(get_broker)
):
    result = broker.create_intent(payload.amount, payload.currency)
    return {"clientSecret": result.client_secret, "paymentIntentId": result.payment_intent_id}


@router.post("/api/checkout/intent", summary="Create a card payment intent for the current cart")
def create_checkout_intent(
    payload: CheckoutIntentIn,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
    broker: PaymentIntentBroker = Depends(get_broker),
):
    result = OrderWriter(db, broker).create_checkout_intent(session, payload.coupon_code)
    return {"clientSecret": result.client_secret, "paymentIntentId": result.payment_intent_id}


@router.post("/api/payments/webhook", summary="Payment processor webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    broker: PaymentIntentBroker = Depends(get_broker),
):
    payload = await request.body()
    event = broker.parse_webhook(payload, stripe_signature)
    return OrderWriter(db, broker).handle_payment_webhook(event)
