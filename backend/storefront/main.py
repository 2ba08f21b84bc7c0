from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.health import router as health_router
from storefront.api.routes_admin import router as admin_router
from storefront.api.routes_cart import router as cart_router
from storefront.api.routes_catalogue import router as catalogue_router
from storefront.api.routes_order import router as order_router
from storefront.api.routes_payment import router as payment_router
from storefront.config import settings
from storefront.db import init_db
from storefront.errors import StorefrontError
from storefront.utils.log import get_logger

log = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db(reset=settings.RESET_DB)
    if not settings.STRIPE_WEBHOOK_SECRET and settings.ALLOW_UNSIGNED_WEBHOOKS:
        log.warning("ALLOW_UNSIGNED_WEBHOOKS is on: payment webhooks are accepted without a signature")
    yield


app = FastAPI(title="Storefront - Checkout Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Cart-Session"],
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/offers", tags=["catalogue"])

app.include_router(cart_router, tags=["cart"])

app.include_router(payment_router, tags=["payments"])

app.include_router(order_router, tags=["orders"])

app.include_router(admin_router, tags=["admin"])
