def test_list_offers_hides_withdrawn(client, catalog):
    res = client.get("/api/offers")
    assert res.status_code == 200
    body = res.json()
    assert "items" in body
    ids = [it["id"] for it in body["items"]]
    assert catalog["key_offer"] in ids
    assert catalog["card_offer"] in ids
    assert catalog["retired_offer"] not in ids


def test_get_offer(client, catalog):
    res = client.get(f"/api/offers/{catalog['card_offer']}")
    assert res.status_code == 200
    body = res.json()
    assert body["title"] == "Gift Card 100"
    assert body["price"] == 100.0
    assert body["stock_count"] == 5


def test_get_missing_offer(client, catalog):
    res = client.get("/api/offers/99999")
    assert res.status_code == 404
    assert res.json()["code"] == "offer_not_found"
