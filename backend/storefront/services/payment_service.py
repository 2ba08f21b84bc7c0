import hashlib
import hmac
import json
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from storefront.adapters.mock_payment import MockPaymentProcessor
from storefront.adapters.stripe_payment import StripePaymentProcessor
from storefront.config import Settings, settings
from storefront.errors import PaymentError, PaymentNotConfirmed, WebhookSignatureInvalid
from storefront.utils.log import get_logger
from storefront.utils.money import D, ZERO, to_minor_units

log = get_logger("payments")

SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class IntentResult:
    client_secret: str
    payment_intent_id: str


@dataclass(frozen=True)
class PaymentIntentView:
    id: str
    status: str
    amount_minor: int
    currency: str
    metadata: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    id: str
    type: str
    data: Dict = field(default_factory=dict)


def build_processor(cfg: Settings):
    if cfg.PAYMENT_PROVIDER == "stripe":
        return StripePaymentProcessor(
            secret_key=cfg.STRIPE_SECRET_KEY,
            api_base=cfg.STRIPE_API_BASE,
            timeout=cfg.PAYMENT_TIMEOUT_SECONDS,
        )
    if cfg.PAYMENT_PROVIDER == "mock":
        return MockPaymentProcessor(delay_ms=cfg.PAYMENT_MOCK_DELAY_MS)
    raise ValueError(f"Unknown PAYMENT_PROVIDER: {cfg.PAYMENT_PROVIDER}")


_processor = None


def get_processor():
    """Process-wide processor; the mock keeps its intents in memory between requests."""
    global _processor
    if _processor is None:
        _processor = build_processor(settings)
    return _processor


def set_processor(processor):
    global _processor
    _processor = processor


def _view(intent: Dict) -> PaymentIntentView:
    return PaymentIntentView(
        id=intent["id"],
        status=intent.get("status", ""),
        amount_minor=int(intent.get("amount") or 0),
        currency=(intent.get("currency") or "").lower(),
        metadata=dict(intent.get("metadata") or {}),
    )


class PaymentIntentBroker:
    """
    Thin boundary to the external card processor.

    ``create_intent`` hands the storefront a client secret for the hosted widget.
    ``confirm_success`` re-reads the intent server-side, so a client reporting
    "succeeded" is only a hint until the processor agrees.
    """

    def __init__(
        self,
        processor=None,
        webhook_secret: Optional[str] = None,
        webhook_tolerance: Optional[int] = None,
        allow_unsigned: Optional[bool] = None,
    ):
        self.processor = processor or get_processor()
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.webhook_tolerance = (
            webhook_tolerance if webhook_tolerance is not None else settings.WEBHOOK_TOLERANCE_SECONDS
        )
        self.allow_unsigned = (
            allow_unsigned if allow_unsigned is not None else settings.ALLOW_UNSIGNED_WEBHOOKS
        )

    def create_intent(self, amount, currency: Optional[str] = None, metadata: Optional[Dict] = None) -> IntentResult:
        try:
            amount = D(amount)
        except ArithmeticError:
            raise PaymentError(PaymentError.INVALID_AMOUNT, "Invalid amount")
        if not amount.is_finite() or amount <= ZERO:
            raise PaymentError(PaymentError.INVALID_AMOUNT, "Invalid amount")
        currency = (currency or settings.DEFAULT_CURRENCY).lower()

        log.info("Creating payment intent amount=%s currency=%s", amount, currency)
        intent = self.processor.create_intent(to_minor_units(amount), currency, metadata)
        if not intent.get("client_secret"):
            raise PaymentError(
                PaymentError.PROCESSOR_REJECTED, "Failed to initialize payment. Please try again.", status_code=502
            )
        log.info("Payment intent created id=%s", intent["id"])
        return IntentResult(client_secret=intent["client_secret"], payment_intent_id=intent["id"])

    def retrieve(self, payment_intent_id: str) -> PaymentIntentView:
        return _view(self.processor.retrieve_intent(payment_intent_id))

    def confirm_success(self, payment_intent_id: str, expected_amount=None) -> PaymentIntentView:
        if not payment_intent_id:
            raise PaymentNotConfirmed("Missing payment intent")
        intent = self.retrieve(payment_intent_id)
        if intent.status != SUCCEEDED:
            log.warning("intent %s reported paid but processor says %s", intent.id, intent.status)
            raise PaymentNotConfirmed("Payment has not succeeded", status=intent.status)
        if expected_amount is not None and intent.amount_minor != to_minor_units(expected_amount):
            log.warning(
                "intent %s amount %s does not match expected %s",
                intent.id,
                intent.amount_minor,
                to_minor_units(expected_amount),
            )
            raise PaymentNotConfirmed("Payment amount does not match the order total")
        return intent

    def parse_webhook(self, payload: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """Verify a ``t=...,v1=...`` signature (HMAC-SHA256 over "t.payload") and decode the event."""
        if self.webhook_secret:
            self._verify_signature(payload, signature_header or "")
        elif not (self.allow_unsigned and getattr(self.processor, "name", "") == "mock"):
            raise PaymentError(PaymentError.NOT_CONFIGURED, "Webhook secret not configured")

        try:
            body = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise WebhookSignatureInvalid("Malformed webhook payload")
        return WebhookEvent(
            id=str(body.get("id") or ""),
            type=str(body.get("type") or ""),
            data=(body.get("data") or {}).get("object") or {},
        )

    def _verify_signature(self, payload: bytes, header: str):
        parts = [p.split("=", 1) for p in header.split(",") if "=" in p]
        timestamp = next((v for k, v in parts if k.strip() == "t"), None)
        signatures = [v for k, v in parts if k.strip() == "v1"]
        if not timestamp or not signatures:
            raise WebhookSignatureInvalid("Missing webhook signature")
        try:
            ts = int(timestamp)
        except ValueError:
            raise WebhookSignatureInvalid("Invalid webhook timestamp")
        if abs(time.time() - ts) > self.webhook_tolerance:
            raise WebhookSignatureInvalid("Webhook timestamp outside tolerance")

        signed = f"{ts}.".encode("utf-8") + payload
        expected = hmac.new(self.webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        if not any(hmac.compare_digest(expected, s) for s in signatures):
            raise WebhookSignatureInvalid("Webhook signature mismatch")


def sign_webhook_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header the way the processor does; used by tools and tests."""
    ts = int(timestamp if timestamp is not None else time.time())
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"
