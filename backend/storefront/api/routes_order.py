from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_broker, get_cart_session
from storefront.db import get_db
from storefront.schemas.checkout_schema import (
    BankTransferCheckoutIn,
    CardCheckoutIn,
    LinkCardPaymentIn,
)
from storefront.services.cart_service import CartSession
from storefront.services.order_ledger import OrderLedger, order_to_dict
from storefront.services.order_service import OrderWriter
from storefront.services.payment_service import PaymentIntentBroker

router = APIRouter(prefix="/api", tags=["orders"])


@router.post("/checkout/bank-transfer", summary="Place order paid by bank transfer")
def checkout_bank_transfer(
    payload: BankTransferCheckoutIn,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
    broker: PaymentIntentBroker = Depends(get_broker),
):
    order = OrderWriter(db, broker).place_bank_transfer_order(
        payload.customer.to_info(), session, payload.coupon_code
    )
    return {
        "orderNumber": order.order_number,
        "paymentToken": order.payment_token,
        "status": order.status,
        "total": float(order.total_amount),
    }


@router.post("/checkout/card", summary="Record order after card payment succeeded")
def checkout_card(
    payload: CardCheckoutIn,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
    broker: PaymentIntentBroker = Depends(get_broker),
):
    order = OrderWriter(db, broker).place_card_order(
        payload.customer.to_info(), session, payload.coupon_code, payload.payment_intent_id
    )
    return {"orderNumber": order.order_number, "status": order.status, "total": float(order.total_amount)}


@router.get("/orders/{order_number}", summary="Order confirmation view")
def get_order(order_number: str, db: Session = Depends(get_db)):
    return order_to_dict(OrderLedger(db).get_by_number(order_number))


@router.get("/pay/{token}", summary="Payment link view")
def payment_link(token: str, db: Session = Depends(get_db)):
    return OrderLedger(db).payment_link_view(token)


@router.post("/pay/{token}/intent", summary="Card payment intent for a payment link")
def payment_link_intent(
    token: str, db: Session = Depends(get_db), broker: PaymentIntentBroker = Depends(get_broker)
):
    result = OrderWriter(db, broker).create_link_intent(token)
    return {"clientSecret": result.client_secret, "paymentIntentId": result.payment_intent_id}


@router.post("/pay/{token}/bank-transfer", summary="Pay a payment link by bank transfer")
def payment_link_bank_transfer(
    token: str, db: Session = Depends(get_db), broker: PaymentIntentBroker = Depends(get_broker)
):
    order = OrderWriter(db, broker).pay_link_by_bank_transfer(token)
    return {"order": order_to_dict(order), "already_paid": True}


@router.post("/pay/{token}/card", summary="Card payment succeeded for a payment link")
def payment_link_card(
    token: str,
    payload: LinkCardPaymentIn,
    db: Session = Depends(get_db),
    broker: PaymentIntentBroker = Depends(get_broker),
):
    order = OrderWriter(db, broker).pay_link_by_card(token, payload.payment_intent_id)
    return {"order": order_to_dict(order), "already_paid": True}
