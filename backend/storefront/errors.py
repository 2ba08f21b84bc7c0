"""
Error taxonomy for the cart / coupon / checkout core.

Services raise these; ``storefront.main`` turns any ``StorefrontError`` into a
JSON ``{"error": ..., "code": ...}`` body with the error's status code, so the
storefront always receives a success-or-error result rather than a stack trace.
"""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class ValidationFailed(StorefrontError):
    code = "validation_failed"


class OfferNotFound(StorefrontError):
    code = "offer_not_found"
    status_code = 404


class OfferUnavailable(StorefrontError):
    code = "offer_unavailable"
    status_code = 409


class CartEmpty(StorefrontError):
    code = "cart_empty"


class CartLineNotFound(StorefrontError):
    code = "cart_line_not_found"
    status_code = 404


class CouponError(StorefrontError):
    """Coupon rejected. Always recoverable: retry another code or check out without one."""

    code = "coupon_error"

    NOT_FOUND = "not_found"
    NOT_YET_ACTIVE = "not_yet_active"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    BELOW_MINIMUM = "below_minimum"
    NOT_APPLICABLE = "not_applicable"

    def __init__(self, reason: str, message: str):
        super().__init__(message, reason=reason)
        self.reason = reason


class PaymentError(StorefrontError):
    """Broker failure. Never followed by an order write."""

    code = "payment_error"

    INVALID_AMOUNT = "invalid_amount"
    NOT_CONFIGURED = "not_configured"
    PROCESSOR_REJECTED = "processor_rejected"
    NETWORK_ERROR = "network_error"

    def __init__(self, reason: str, message: str, status_code: Optional[int] = None):
        super().__init__(message, reason=reason)
        self.reason = reason
        if status_code is not None:
            self.status_code = status_code
        elif reason == self.NOT_CONFIGURED:
            self.status_code = 500
        elif reason == self.NETWORK_ERROR:
            self.status_code = 502


class PaymentNotConfirmed(StorefrontError):
    code = "payment_not_confirmed"
    status_code = 402


class OrderNotFound(StorefrontError):
    code = "order_not_found"
    status_code = 404


class InvalidStatusTransition(StorefrontError):
    code = "invalid_status_transition"
    status_code = 409


class DuplicateRequest(StorefrontError):
    code = "duplicate_request"
    status_code = 409


class ReconciliationRequired(StorefrontError):
    """The processor captured the money but the order row could not be written."""

    code = "reconciliation_required"
    status_code = 500


class WebhookSignatureInvalid(StorefrontError):
    code = "webhook_signature_invalid"
