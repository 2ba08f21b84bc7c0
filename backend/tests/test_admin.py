from uuid import uuid4

import pytest

from conftest import CUSTOMER


def _bank_transfer_order(client, catalog, offer="card_offer", qty=1, customer=CUSTOMER):
    headers = {"X-Cart-Session": uuid4().hex}
    client.post("/api/cart/items", json={"offer_id": catalog[offer], "quantity": qty}, headers=headers)
    res = client.post("/api/checkout/bank-transfer", json={"customer": customer}, headers=headers)
    assert res.status_code == 200
    return res.json()["orderNumber"]


def _move(client, number, status):
    return client.patch(f"/api/admin/orders/{number}/status", json={"status": status})


def test_status_moves_forward(client, catalog):
    number = _bank_transfer_order(client, catalog)
    res = _move(client, number, "processing")
    assert res.status_code == 200
    assert res.json()["status"] == "processing"
    assert _move(client, number, "completed").json()["status"] == "completed"


def test_same_status_is_noop(client, catalog):
    number = _bank_transfer_order(client, catalog)
    res = _move(client, number, "pending")
    assert res.status_code == 200
    assert res.json()["status"] == "pending"


@pytest.mark.parametrize("path,target", [(["processing", "completed"], "cancelled"), (["cancelled"], "processing")])
def test_terminal_statuses_are_final(client, catalog, path, target):
    number = _bank_transfer_order(client, catalog)
    for step in path:
        assert _move(client, number, step).status_code == 200
    res = _move(client, number, target)
    assert res.status_code == 409
    assert res.json()["current_status"] == path[-1]


def test_pending_cannot_skip_to_completed(client, catalog):
    number = _bank_transfer_order(client, catalog)
    assert _move(client, number, "completed").status_code == 409


def test_unknown_status_and_order(client, catalog):
    number = _bank_transfer_order(client, catalog)
    assert _move(client, number, "shipped").status_code == 400
    assert _move(client, "nope", "processing").status_code == 404


def test_list_filters(client, catalog):
    waiting = _bank_transfer_order(client, catalog)
    approved = _bank_transfer_order(client, catalog)
    _move(client, approved, "processing")

    items = client.get("/api/admin/orders", params={"status": "awaiting_approval"}).json()["items"]
    assert [o["order_number"] for o in items] == [waiting]

    items = client.get("/api/admin/orders", params={"status": "processing"}).json()["items"]
    assert [o["order_number"] for o in items] == [approved]

    items = client.get("/api/admin/orders", params={"email": CUSTOMER["email"]}).json()["items"]
    assert len(items) == 2


def test_delete_order(client, catalog):
    number = _bank_transfer_order(client, catalog)
    assert client.delete(f"/api/admin/orders/{number}").json() == {"ok": True}
    assert client.get(f"/api/orders/{number}").status_code == 404


def test_statistics_count_revenue_from_paid_orders_only(client, catalog):
    other = {**CUSTOMER, "full_name": "Ruwan Fernando", "email": "ruwan@example.com"}
    _bank_transfer_order(client, catalog)
    paid = _bank_transfer_order(client, catalog, offer="key_offer", qty=2, customer=other)
    _move(client, paid, "processing")
    cancelled = _bank_transfer_order(client, catalog)
    _move(client, cancelled, "cancelled")

    stats = client.get("/api/admin/orders/statistics").json()
    assert stats["total_orders"] == 3
    assert stats["total_revenue"] == 800.0
    assert stats["average_order_value"] == 800.0
    by_status = {row["status"]: row for row in stats["orders_by_status"]}
    assert by_status["pending"] == {"status": "pending", "count": 1, "revenue": 0.0}
    assert by_status["processing"]["revenue"] == 800.0
    assert stats["top_customers"] == [
        {"name": "Ruwan Fernando", "email": "ruwan@example.com", "orders": 1, "revenue": 800.0}
    ]
    assert len(stats["sales_by_day"]) == 30
    assert sum(day["revenue"] for day in stats["sales_by_day"]) == 800.0


def test_admin_key_required_when_configured(client, catalog, monkeypatch):
    from storefront.config import settings

    monkeypatch.setattr(settings, "ADMIN_API_KEY", "s3cret")
    assert client.get("/api/admin/orders").status_code == 401
    res = client.get("/api/admin/orders", headers={"X-Admin-Key": "s3cret"})
    assert res.status_code == 200
