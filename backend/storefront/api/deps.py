from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, Response

from storefront.config import settings
from storefront.services.cart_service import CartSession
from storefront.services.payment_service import PaymentIntentBroker

CART_COOKIE = "cart_session_id"


def get_cart_session(
    request: Request,
    response: Response,
    x_cart_session: Optional[str] = Header(None),
) -> CartSession:
    """
    Resolve the caller's cart session from the X-Cart-Session header or the
    cart_session_id cookie, minting a new one when neither is present.
    """
    session = CartSession.from_token(x_cart_session or request.cookies.get(CART_COOKIE))
    response.set_cookie(CART_COOKIE, session.token, httponly=False, samesite="lax")
    response.headers["X-Cart-Session"] = session.token
    return session


def get_broker() -> PaymentIntentBroker:
    return PaymentIntentBroker()


def require_admin(x_admin_key: Optional[str] = Header(None)):
    # authentication proper lives in front of this service; the key is an optional extra gate
    if settings.ADMIN_API_KEY and x_admin_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Admin key required")


AdminGuard = Depends(require_admin)
