from fastapi import APIRouter
from sqlalchemy import text

from storefront.db import engine
from storefront.services.payment_service import get_processor
from storefront.utils.log import get_logger

router = APIRouter()
log = get_logger("health")


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    payment_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        log.exception("database health check failed")
    try:
        processor = get_processor()
        payment_ok = processor.health_check()
    except Exception:
        log.exception("payment processor health check failed")

    return {
        "status": "ok" if db_ok and payment_ok else "degraded",
        "db": db_ok,
        "payment_processor": payment_ok,
    }
