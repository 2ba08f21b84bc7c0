import os
import tempfile
from datetime import datetime, timedelta, timezone

# The engine is bound at import time, so point it at a throwaway file first.
_TMP_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["PAYMENT_PROVIDER"] = "mock"
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["ADMIN_API_KEY"] = ""
os.environ["ALLOW_UNSIGNED_WEBHOOKS"] = "true"

import pytest
from fastapi.testclient import TestClient

from storefront.adapters.mock_payment import MockPaymentProcessor
from storefront.db import SessionLocal, init_db
from storefront.main import app
from storefront.models.catalog import Category, Product, ProductOffer
from storefront.models.coupon import Coupon
from storefront.services.payment_service import set_processor


def naive_utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture(autouse=True)
def processor():
    mock = MockPaymentProcessor()
    set_processor(mock)
    yield mock
    set_processor(None)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def catalog():
    """Two categories, two products, three offers (one withdrawn). Returns plain ids."""
    s = SessionLocal()
    try:
        keys = Category(name="Game Keys", slug="game-keys")
        cards = Category(name="Gift Cards", slug="gift-cards")
        s.add_all([keys, cards])
        s.flush()

        game = Product(name="Space Miner", description="Steam key", category_id=keys.id)
        card = Product(name="Store Credit", description="Gift card", category_id=cards.id)
        s.add_all([game, card])
        s.flush()

        key_offer = ProductOffer(product_id=game.id, title="Space Miner Key", price=400, stock_count=10)
        card_offer = ProductOffer(product_id=card.id, title="Gift Card 100", price=100, stock_count=5)
        retired = ProductOffer(
            product_id=game.id, title="Space Miner Deluxe", price=50, stock_count=3, is_available=False
        )
        s.add_all([key_offer, card_offer, retired])
        s.commit()
        return {
            "keys_category": keys.id,
            "cards_category": cards.id,
            "game": game.id,
            "card": card.id,
            "key_offer": key_offer.id,
            "card_offer": card_offer.id,
            "retired_offer": retired.id,
        }
    finally:
        s.close()


def make_coupon(**fields):
    defaults = {
        "discount_type": "percentage",
        "discount_value": 10,
        "usage_count": 0,
        "is_active": True,
        "applicable_to": "all",
    }
    defaults.update(fields)
    defaults["code"] = defaults["code"].upper()
    s = SessionLocal()
    try:
        coupon = Coupon(**defaults)
        s.add(coupon)
        s.commit()
        return coupon.id
    finally:
        s.close()


@pytest.fixture
def coupons():
    now = naive_utcnow()
    return {
        "save10": make_coupon(code="SAVE10", discount_value=10, max_discount_amount=50),
        "flat300": make_coupon(code="FLAT300", discount_type="fixed", discount_value=300),
        "expired": make_coupon(code="OLD20", discount_value=20, valid_until=now - timedelta(days=1)),
        "future": make_coupon(code="SOON", discount_value=20, valid_from=now + timedelta(days=1)),
        "last_one": make_coupon(code="LASTONE", discount_value=5, usage_limit=1),
    }


def coupon_usage(coupon_id):
    s = SessionLocal()
    try:
        return s.get(Coupon, coupon_id).usage_count
    finally:
        s.close()


CUSTOMER = {
    "full_name": "Nimal Perera",
    "email": "nimal@example.com",
    "contact": "+94 77 123 4567",
    "country": "Sri Lanka",
}
