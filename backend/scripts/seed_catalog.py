#!/usr/bin/env python3
"""
Seed categories, products, offers and coupons from a JSON file.

The file is an object with "categories" and "coupons" lists; each category
carries its products and each product its offers. Entries are matched by
name (categories, products), title (offers) or code (coupons) and updated in
place, so the script can be re-run safely.

Usage:
    python scripts/seed_catalog.py --file scripts/sample_catalog.json
"""
import argparse
import json
import os
import sys
from datetime import datetime

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.db import SessionLocal, init_db
from storefront.models.catalog import Category, Product, ProductOffer
from storefront.models.coupon import Coupon
from storefront.repositories.coupon_repo import normalize_code

DEFAULT_SOURCE = os.path.join(os.path.dirname(__file__), "sample_catalog.json")

COUPON_FIELDS = (
    "description",
    "discount_type",
    "discount_value",
    "min_purchase_amount",
    "max_discount_amount",
    "usage_limit",
    "is_active",
    "applicable_to",
    "category_ids",
    "product_ids",
)


def _parse_dt(value):
    # ISO strings, read as naive UTC
    return datetime.fromisoformat(value.replace("Z", "")) if value else None


def _upsert_category(db, entry):
    cat = db.query(Category).filter(Category.name == entry["name"]).first()
    if not cat:
        cat = Category(name=entry["name"])
        db.add(cat)
    cat.slug = entry.get("slug") or entry["name"].lower().replace(" ", "-")
    db.flush()
    return cat


def _upsert_product(db, category, entry):
    product = db.query(Product).filter(Product.name == entry["name"]).first()
    if not product:
        product = Product(name=entry["name"])
        db.add(product)
    product.description = entry.get("description") or ""
    product.category_id = category.id
    product.is_active = bool(entry.get("is_active", True))
    db.flush()
    return product


def _upsert_offer(db, product, entry):
    offer = (
        db.query(ProductOffer)
        .filter(ProductOffer.product_id == product.id, ProductOffer.title == entry["title"])
        .first()
    )
    if not offer:
        offer = ProductOffer(product_id=product.id, title=entry["title"])
        db.add(offer)
    offer.price = entry.get("price", 0)
    offer.stock_count = int(entry.get("stock_count", 0))
    offer.is_available = bool(entry.get("is_available", True))
    offer.image_url = entry.get("image_url")
    db.flush()
    return offer


def _upsert_coupon(db, entry, names):
    code = normalize_code(entry["code"])
    coupon = db.query(Coupon).filter(Coupon.code == code).first()
    if not coupon:
        coupon = Coupon(code=code, usage_count=0)
        db.add(coupon)
    for field in COUPON_FIELDS:
        if field in entry:
            setattr(coupon, field, entry[field])
    # scopes may name categories and offers instead of ids
    if "categories" in entry:
        coupon.category_ids = [names["categories"][n] for n in entry["categories"]]
    if "offers" in entry:
        coupon.product_ids = [names["offers"][t] for t in entry["offers"]]
    coupon.valid_from = _parse_dt(entry.get("valid_from"))
    coupon.valid_until = _parse_dt(entry.get("valid_until"))
    db.flush()
    return coupon


def seed_from_file(path: str, reset: bool = False):
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except ValueError as e:
            raise RuntimeError(f"Failed to parse JSON from {path}: {e}")

    init_db(reset=reset)
    db = SessionLocal()
    names = {"categories": {}, "offers": {}}
    counts = {"categories": 0, "products": 0, "offers": 0, "coupons": 0}
    try:
        for cat_entry in data.get("categories", []):
            category = _upsert_category(db, cat_entry)
            names["categories"][category.name] = category.id
            counts["categories"] += 1
            for prod_entry in cat_entry.get("products", []):
                product = _upsert_product(db, category, prod_entry)
                counts["products"] += 1
                for offer_entry in prod_entry.get("offers", []):
                    offer = _upsert_offer(db, product, offer_entry)
                    names["offers"][offer.title] = offer.id
                    counts["offers"] += 1

        for coupon_entry in data.get("coupons", []):
            _upsert_coupon(db, coupon_entry, names)
            counts["coupons"] += 1

        db.commit()
        print("Seeded:", counts)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=DEFAULT_SOURCE, help="Path to catalog json")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate tables first")
    args = parser.parse_args()
    if not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    seed_from_file(args.file, reset=args.reset)
