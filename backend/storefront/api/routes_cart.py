from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_cart_session
from storefront.db import get_db
from storefront.errors import CouponError
from storefront.schemas.cart_schema import AddItemIn, ApplyCouponIn, UpdateQuantityIn
from storefront.services.cart_service import CartService, CartSession
from storefront.services.coupon_service import CouponEvaluator
from storefront.services.pricing import compute_totals, line_total
from storefront.utils.money import to_float

router = APIRouter(prefix="/api", tags=["cart"])


def _totals_dict(totals):
    return {
        "subtotal": to_float(totals.subtotal),
        "discount_amount": to_float(totals.discount_amount),
        "total": to_float(totals.total),
    }


def _line_dict(line):
    return {
        "id": line.line_id,
        "offer_id": line.offer_id,
        "title": line.title,
        "price": to_float(line.price),
        "quantity": line.quantity,
        "line_total": to_float(line_total(line)),
        "image_url": line.image_url,
        "is_available": line.is_available,
    }


@router.get("/cart", summary="Get cart with totals")
def get_cart(
    coupon: Optional[str] = Query(None, description="coupon code to price the cart with"),
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    snapshot = svc.snapshot(session)
    applied = None
    coupon_error = None
    if coupon and not snapshot.is_empty():
        try:
            applied = CouponEvaluator(db).evaluate(coupon, snapshot, compute_totals(snapshot).subtotal)
        except CouponError as e:
            # the cart still renders; the coupon is simply not applied
            coupon_error = e.to_dict()
    totals = compute_totals(snapshot, applied)
    return {
        "session": session.token,
        "items": [_line_dict(l) for l in snapshot],
        "count": sum(l.quantity for l in snapshot),
        "totals": _totals_dict(totals),
        "coupon": applied.as_dict() if applied else None,
        "coupon_error": coupon_error,
    }


@router.get("/cart/count", summary="Number of items in cart")
def cart_count(session: CartSession = Depends(get_cart_session), db: Session = Depends(get_db)):
    return {"count": CartService(db).count(session)}


@router.post("/cart/items", summary="Add offer to cart")
def add_item(
    payload: AddItemIn,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
):
    item = CartService(db).add_item(session, payload.offer_id, payload.quantity)
    return {"success": True, "line_id": item.id, "quantity": item.quantity, "session": session.token}


@router.patch("/cart/items/{line_id}", summary="Change line quantity")
def update_item(
    line_id: int,
    payload: UpdateQuantityIn,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
):
    item = CartService(db).update_quantity(session, line_id, payload.quantity)
    return {"success": True, "line_id": item.id, "quantity": item.quantity}


@router.delete("/cart/items/{line_id}", summary="Remove line")
def remove_item(
    line_id: int,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
):
    CartService(db).remove_item(session, line_id)
    return {"success": True}


@router.delete("/cart", summary="Clear cart")
def clear_cart(session: CartSession = Depends(get_cart_session), db: Session = Depends(get_db)):
    removed = CartService(db).clear(session)
    return {"success": True, "removed": removed}


@router.post("/coupons/apply", summary="Validate a coupon against the cart")
def apply_coupon(
    payload: ApplyCouponIn,
    session: CartSession = Depends(get_cart_session),
    db: Session = Depends(get_db),
):
    snapshot = CartService(db).snapshot(session)
    subtotal = compute_totals(snapshot).subtotal
    applied = CouponEvaluator(db).evaluate(payload.code, snapshot, subtotal)
    return {"coupon": applied.as_dict(), "totals": _totals_dict(compute_totals(snapshot, applied))}
