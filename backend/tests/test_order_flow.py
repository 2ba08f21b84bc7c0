from uuid import uuid4

import pytest

from conftest import CUSTOMER, coupon_usage
from storefront.db import SessionLocal
from storefront.errors import CouponError
from storefront.models.catalog import ProductOffer
from storefront.models.idempotency import IdempotencyRecord, IdempotencyStatus
from storefront.models.order import Order
from storefront.repositories.order_repo import OrderRepository
from storefront.services.cart_service import CartService, CartSession
from storefront.services.order_service import CustomerInfo, OrderWriter


def _fill_cart(client, *items):
    # explicit token; the client would otherwise reuse the last cart cookie
    headers = {"X-Cart-Session": uuid4().hex}
    for offer_id, qty in items:
        res = client.post("/api/cart/items", json={"offer_id": offer_id, "quantity": qty}, headers=headers)
        assert res.status_code == 200
        headers = {"X-Cart-Session": res.json()["session"]}
    return headers


def _count(client, headers):
    return client.get("/api/cart/count", headers=headers).json()["count"]


def _order_count():
    s = SessionLocal()
    try:
        return s.query(Order).count()
    finally:
        s.close()


def test_bank_transfer_order_without_coupon(client, catalog):
    headers = _fill_cart(client, (catalog["key_offer"], 1), (catalog["card_offer"], 2))
    res = client.post("/api/checkout/bank-transfer", json={"customer": CUSTOMER}, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "pending"
    assert body["total"] == 600.0
    assert body["paymentToken"]

    order = client.get(f"/api/orders/{body['orderNumber']}").json()
    assert order["payment_method"] == "bank_transfer"
    assert order["discount_amount"] == 0.0
    assert order["coupon_code"] is None
    assert order["subtotal"] == 600.0
    assert sorted((it["name"], it["quantity"], it["price"]) for it in order["items"]) == [
        ("Gift Card 100", 2, 100.0),
        ("Space Miner Key", 1, 400.0),
    ]
    assert _count(client, headers) == 0


def test_bank_transfer_with_coupon_redeems_once(client, catalog, coupons):
    headers = _fill_cart(client, (catalog["key_offer"], 2), (catalog["card_offer"], 2))
    res = client.post(
        "/api/checkout/bank-transfer",
        json={"customer": CUSTOMER, "coupon_code": "save10"},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["total"] == 950.0

    order = client.get(f"/api/orders/{res.json()['orderNumber']}").json()
    assert order["coupon_code"] == "SAVE10"
    assert order["discount_amount"] == 50.0
    assert coupon_usage(coupons["save10"]) == 1


def test_placing_order_clears_only_own_cart(client, catalog):
    mine = _fill_cart(client, (catalog["key_offer"], 1))
    theirs = _fill_cart(client, (catalog["key_offer"], 2), (catalog["card_offer"], 1))

    res = client.post("/api/checkout/bank-transfer", json={"customer": CUSTOMER}, headers=mine)
    assert res.status_code == 200
    assert _count(client, mine) == 0
    assert _count(client, theirs) == 3


def test_order_items_unaffected_by_later_price_change(client, catalog):
    headers = _fill_cart(client, (catalog["card_offer"], 1))
    number = client.post(
        "/api/checkout/bank-transfer", json={"customer": CUSTOMER}, headers=headers
    ).json()["orderNumber"]

    s = SessionLocal()
    try:
        s.get(ProductOffer, catalog["card_offer"]).price = 175
        s.commit()
    finally:
        s.close()

    order = client.get(f"/api/orders/{number}").json()
    assert order["items"][0]["price"] == 100.0
    assert order["total_amount"] == 100.0


def test_checkout_empty_cart(client, catalog):
    res = client.post(
        "/api/checkout/bank-transfer", json={"customer": CUSTOMER}, headers={"X-Cart-Session": "empty"}
    )
    assert res.status_code == 400
    assert res.json()["code"] == "cart_empty"


def test_checkout_customer_validation(client, catalog):
    headers = _fill_cart(client, (catalog["card_offer"], 1))
    res = client.post(
        "/api/checkout/bank-transfer", json={"customer": {**CUSTOMER, "country": ""}}, headers=headers
    )
    assert res.status_code == 422

    res = client.post(
        "/api/checkout/bank-transfer",
        json={"customer": {**CUSTOMER, "email": "not-an-email"}},
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["error"] == "Email is invalid"
    assert _count(client, headers) == 1


def test_checkout_rejects_withdrawn_offer(client, catalog):
    headers = _fill_cart(client, (catalog["key_offer"], 1))
    s = SessionLocal()
    try:
        s.get(ProductOffer, catalog["key_offer"]).is_available = False
        s.commit()
    finally:
        s.close()

    res = client.post("/api/checkout/bank-transfer", json={"customer": CUSTOMER}, headers=headers)
    assert res.status_code == 409
    assert res.json()["offers"] == ["Space Miner Key"]
    assert _order_count() == 0
    assert _count(client, headers) == 1


def test_checkout_with_rejected_coupon_writes_nothing(client, catalog, coupons):
    headers = _fill_cart(client, (catalog["card_offer"], 1))
    res = client.post(
        "/api/checkout/bank-transfer",
        json={"customer": CUSTOMER, "coupon_code": "OLD20"},
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["reason"] == "expired"
    assert _order_count() == 0
    assert _count(client, headers) == 1


def _customer():
    return CustomerInfo(**CUSTOMER)


def test_last_coupon_use_goes_to_one_order(db, catalog, coupons):
    carts = CartService(db)
    first, second = CartSession.new(), CartSession.new()
    carts.add_item(first, catalog["card_offer"], 1)
    carts.add_item(second, catalog["key_offer"], 1)

    writer = OrderWriter(db)
    # both checkouts validate the coupon before either has redeemed it
    prepared_first = writer.prepare(first, "LASTONE")
    prepared_second = writer.prepare(second, "LASTONE")
    assert prepared_first.applied_coupon and prepared_second.applied_coupon

    writer._write(_customer(), first, prepared_first, payment_method="bank_transfer", status="pending")
    with pytest.raises(CouponError) as exc:
        writer._write(_customer(), second, prepared_second, payment_method="bank_transfer", status="pending")

    assert exc.value.reason == CouponError.LIMIT_REACHED
    assert coupon_usage(coupons["last_one"]) == 1
    assert _order_count() == 1
    assert carts.count(second) == 1


def test_captured_payment_honours_coupon_past_limit(db, catalog, coupons):
    carts = CartService(db)
    first, second = CartSession.new(), CartSession.new()
    carts.add_item(first, catalog["card_offer"], 1)
    carts.add_item(second, catalog["card_offer"], 1)

    writer = OrderWriter(db)
    prepared_first = writer.prepare(first, "LASTONE")
    prepared_second = writer.prepare(second, "LASTONE")
    writer._write(_customer(), first, prepared_first, payment_method="bank_transfer", status="pending")
    order = writer._write(
        _customer(),
        second,
        prepared_second,
        payment_method="stripe",
        status="processing",
        payment_captured=True,
    )

    assert order.coupon_code == "LASTONE"
    assert coupon_usage(coupons["last_one"]) == 2


def _card_intent(client, headers, coupon_code=None):
    res = client.post("/api/checkout/intent", json={"coupon_code": coupon_code}, headers=headers)
    assert res.status_code == 200
    return res.json()["paymentIntentId"]


def test_card_checkout_is_idempotent(client, processor, catalog, coupons):
    headers = _fill_cart(client, (catalog["key_offer"], 2), (catalog["card_offer"], 2))
    intent_id = _card_intent(client, headers, "SAVE10")
    assert processor.retrieve_intent(intent_id)["amount"] == 95000
    processor.mark_succeeded(intent_id)

    payload = {"customer": CUSTOMER, "coupon_code": "SAVE10", "payment_intent_id": intent_id}
    res = client.post("/api/checkout/card", json=payload, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "processing"
    assert body["total"] == 950.0

    again = client.post("/api/checkout/card", json=payload, headers=headers)
    assert again.status_code == 200
    assert again.json()["orderNumber"] == body["orderNumber"]
    assert _order_count() == 1
    assert coupon_usage(coupons["save10"]) == 1

    order = client.get(f"/api/orders/{body['orderNumber']}").json()
    assert order["payment_method"] == "stripe"


def test_card_checkout_requires_succeeded_intent(client, catalog):
    headers = _fill_cart(client, (catalog["card_offer"], 1))
    intent_id = _card_intent(client, headers)

    res = client.post(
        "/api/checkout/card",
        json={"customer": CUSTOMER, "payment_intent_id": intent_id},
        headers=headers,
    )
    assert res.status_code == 402
    assert res.json()["code"] == "payment_not_confirmed"
    assert _order_count() == 0
    assert _count(client, headers) == 1


def test_card_checkout_amount_mismatch_needs_reconciliation(client, processor, catalog):
    headers = _fill_cart(client, (catalog["card_offer"], 1))
    intent_id = _card_intent(client, headers)
    processor.mark_succeeded(intent_id)
    client.post("/api/cart/items", json={"offer_id": catalog["card_offer"]}, headers=headers)

    res = client.post(
        "/api/checkout/card",
        json={"customer": CUSTOMER, "payment_intent_id": intent_id},
        headers=headers,
    )
    # the money is already taken, so this is not a plain payment refusal
    assert res.status_code == 500
    assert res.json()["code"] == "reconciliation_required"
    assert res.json()["payment_intent_id"] == intent_id
    assert _order_count() == 0
    assert _count(client, headers) == 2


def test_captured_card_payment_keeps_coupon_after_last_use_taken(client, processor, catalog, coupons):
    card_headers = _fill_cart(client, (catalog["card_offer"], 1))
    intent_id = _card_intent(client, card_headers, "LASTONE")
    assert processor.retrieve_intent(intent_id)["amount"] == 9500
    processor.mark_succeeded(intent_id)

    bank_headers = _fill_cart(client, (catalog["card_offer"], 1))
    res = client.post(
        "/api/checkout/bank-transfer",
        json={"customer": CUSTOMER, "coupon_code": "LASTONE"},
        headers=bank_headers,
    )
    assert res.status_code == 200
    assert coupon_usage(coupons["last_one"]) == 1

    res = client.post(
        "/api/checkout/card",
        json={"customer": CUSTOMER, "coupon_code": "LASTONE", "payment_intent_id": intent_id},
        headers=card_headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "processing"
    assert body["total"] == 95.0
    assert _order_count() == 2
    assert coupon_usage(coupons["last_one"]) == 2
    assert _count(client, card_headers) == 0


def test_captured_card_payment_survives_offer_withdrawal(client, processor, catalog):
    headers = _fill_cart(client, (catalog["key_offer"], 1))
    intent_id = _card_intent(client, headers)
    processor.mark_succeeded(intent_id)
    s = SessionLocal()
    try:
        s.get(ProductOffer, catalog["key_offer"]).is_available = False
        s.commit()
    finally:
        s.close()

    res = client.post(
        "/api/checkout/card",
        json={"customer": CUSTOMER, "payment_intent_id": intent_id},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["total"] == 400.0
    assert _order_count() == 1


def test_card_payment_from_another_cart_needs_reconciliation(client, processor, catalog):
    owner = _fill_cart(client, (catalog["card_offer"], 1))
    intent_id = _card_intent(client, owner)
    processor.mark_succeeded(intent_id)
    other = _fill_cart(client, (catalog["card_offer"], 1))

    res = client.post(
        "/api/checkout/card",
        json={"customer": CUSTOMER, "payment_intent_id": intent_id},
        headers=other,
    )
    assert res.status_code == 500
    assert res.json()["code"] == "reconciliation_required"
    assert _order_count() == 0
    assert _count(client, other) == 1


def test_card_checkout_write_failure_needs_reconciliation(client, processor, catalog, monkeypatch):
    headers = _fill_cart(client, (catalog["card_offer"], 1))
    intent_id = _card_intent(client, headers)
    processor.mark_succeeded(intent_id)

    def broken_add(self, order):
        raise RuntimeError("disk full")

    monkeypatch.setattr(OrderRepository, "add", broken_add)
    payload = {"customer": CUSTOMER, "payment_intent_id": intent_id}
    res = client.post("/api/checkout/card", json=payload, headers=headers)
    assert res.status_code == 500
    body = res.json()
    assert body["code"] == "reconciliation_required"
    assert body["payment_intent_id"] == intent_id
    assert body["error"] == "Payment successful but failed to save order. Please contact support."
    assert _count(client, headers) == 1

    s = SessionLocal()
    try:
        rec = s.query(IdempotencyRecord).filter_by(key=f"card-order:{intent_id}").one()
        assert rec.status == IdempotencyStatus.FAILED
        assert "disk full" in rec.last_error
    finally:
        s.close()

    monkeypatch.undo()
    retry = client.post("/api/checkout/card", json=payload, headers=headers)
    assert retry.status_code == 200
    assert retry.json()["status"] == "processing"
    assert _count(client, headers) == 0
