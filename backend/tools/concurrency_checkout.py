import argparse
import concurrent.futures
import os

import requests

BASE = os.environ.get("STOREFRONT_BASE", "http://127.0.0.1:8000")

CUSTOMER = {
    "full_name": "Load Test",
    "email": "loadtest@example.com",
    "contact": "0000000000",
    "country": "Sri Lanka",
}


def fill_cart(offer_id, qty):
    r = requests.post(f"{BASE}/api/cart/items", json={"offer_id": offer_id, "quantity": qty}, timeout=10)
    r.raise_for_status()
    return r.json()["session"]


def checkout_task(i, session, coupon):
    headers = {"X-Cart-Session": session}
    payload = {"customer": CUSTOMER, "coupon_code": coupon}
    try:
        r = requests.post(f"{BASE}/api/checkout/bank-transfer", json=payload, headers=headers, timeout=20)
        return (i, r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def run_coupon_race(workers, offer_id, qty, coupon):
    """Every worker checks out its own cart with the same coupon at the same time."""
    print(f"Running coupon race: workers={workers}, offer={offer_id}, coupon={coupon}")
    sessions = [fill_cart(offer_id, qty) for _ in range(workers)]
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(checkout_task, i, s, coupon) for i, s in enumerate(sessions)]
        results = [f.result() for f in futures]
    print("Results:")
    for r in results:
        print(r)
    placed = [r for r in results if r[1] == 200]
    print(f"Orders placed with {coupon}: {len(placed)} of {workers}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent checkouts racing for one coupon.")
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--offer", type=int, default=1)
    parser.add_argument("--qty", type=int, default=1)
    parser.add_argument("--coupon", default="LAUNCH")
    args = parser.parse_args()
    run_coupon_race(args.workers, args.offer, args.qty, args.coupon)
