from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import AdminGuard, get_broker
from storefront.db import get_db
from storefront.schemas.checkout_schema import AdminCreateOrderIn, StatusUpdateIn
from storefront.services.order_ledger import OrderLedger, order_to_dict
from storefront.services.order_service import CustomerInfo, OrderWriter
from storefront.services.payment_service import PaymentIntentBroker

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[AdminGuard])


@router.get("/orders", summary="List orders")
def list_orders(
    status: Optional[str] = Query(None, description="pending|processing|completed|cancelled|awaiting_approval"),
    email: Optional[str] = None,
    order_number: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    orders = OrderLedger(db).list_orders(
        status=status, email=email, order_number=order_number, limit=limit, offset=offset
    )
    return {"items": [order_to_dict(o) for o in orders]}


@router.get("/orders/statistics", summary="Order analytics")
def order_statistics(db: Session = Depends(get_db)):
    return OrderLedger(db).statistics()


@router.post("/orders", summary="Create an order paid later through a payment link")
def create_payment_link_order(
    payload: AdminCreateOrderIn,
    db: Session = Depends(get_db),
    broker: PaymentIntentBroker = Depends(get_broker),
):
    c = payload.customer
    order = OrderWriter(db, broker).create_payment_link_order(
        CustomerInfo(full_name=c.full_name, email=c.email, contact=c.contact, country=c.country),
        [it.model_dump() for it in payload.items],
    )
    return {
        "order": order_to_dict(order),
        "paymentToken": order.payment_token,
        "paymentPath": f"/pay/{order.payment_token}",
    }


@router.patch("/orders/{order_number}/status", summary="Move an order to a new status")
def update_status(order_number: str, payload: StatusUpdateIn, db: Session = Depends(get_db)):
    order = OrderLedger(db).transition(order_number, payload.status)
    return order_to_dict(order)


@router.delete("/orders/{order_number}", summary="Delete an order")
def delete_order(order_number: str, db: Session = Depends(get_db)):
    OrderLedger(db).delete_order(order_number)
    return {"ok": True}
