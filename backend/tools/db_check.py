import json
import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
KEY = sys.argv[2] if len(sys.argv) > 2 else None
CODE = sys.argv[3] if len(sys.argv) > 3 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Idempotency Records ===")
if KEY:
    cur.execute(
        "SELECT id, key, operation, status, response_body, last_error, created_at FROM idempotency_records WHERE key=?",
        (KEY,),
    )
else:
    cur.execute(
        "SELECT id, key, operation, status, response_body, last_error, created_at FROM idempotency_records ORDER BY created_at DESC LIMIT 20"
    )
for r in cur.fetchall():
    rb = r[4] or "NULL"
    try:
        rb = json.loads(rb) if isinstance(rb, str) else rb
    except ValueError:
        pass
    print(
        {
            "id": r[0],
            "key": r[1],
            "operation": r[2],
            "status": r[3],
            "response_body": rb,
            "last_error": r[5],
            "created_at": r[6],
        }
    )

print("\n=== Recent Orders ===")
cur.execute(
    "SELECT order_number, status, payment_method, subtotal, discount_amount, total_amount, coupon_code, created_at "
    "FROM orders ORDER BY created_at DESC LIMIT 20"
)
for r in cur.fetchall():
    print(r)

print("\n=== Coupons ===")
if CODE:
    cur.execute(
        "SELECT code, discount_type, discount_value, usage_count, usage_limit, is_active FROM coupons WHERE code=?",
        (CODE.upper(),),
    )
else:
    cur.execute("SELECT code, discount_type, discount_value, usage_count, usage_limit, is_active FROM coupons")
for r in cur.fetchall():
    print(r)

if CODE:
    cur.execute("SELECT COUNT(*) FROM orders WHERE coupon_code=?", (CODE.upper(),))
    print(f"Orders carrying {CODE.upper()}: {cur.fetchone()[0]}")

conn.close()
