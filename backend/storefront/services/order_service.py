import random
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.errors import (
    CartEmpty,
    CouponError,
    DuplicateRequest,
    InvalidStatusTransition,
    OfferNotFound,
    OfferUnavailable,
    PaymentNotConfirmed,
    ReconciliationRequired,
    ValidationFailed,
)
from storefront.models.idempotency import IdempotencyStatus
from storefront.models.order import Order, OrderStatus, PaymentMethod
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.catalog_repo import CatalogRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.idempotency_repo import IdempotencyRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.services.cart_service import CartService, CartSession, CartSnapshot
from storefront.services.coupon_service import AppliedCoupon, CouponEvaluator
from storefront.services.order_ledger import OrderLedger, is_already_paid
from storefront.services.payment_service import (
    IntentResult,
    PaymentIntentBroker,
    PaymentIntentView,
    WebhookEvent,
)
from storefront.services.pricing import Totals, compute_totals
from storefront.utils.log import get_logger
from storefront.utils.money import D, round_money, to_minor_units
from storefront.utils.transactions import smart_transaction

log = get_logger("checkout")

_ALNUM = string.ascii_uppercase + string.digits

RECONCILIATION_MESSAGE = "Payment successful but failed to save order. Please contact support."


@dataclass
class CustomerInfo:
    full_name: str
    email: str
    contact: str
    country: str

    def validate(self) -> "CustomerInfo":
        for label, value in (
            ("Full name", self.full_name),
            ("Email", self.email),
            ("Contact", self.contact),
            ("Country", self.country),
        ):
            if not (value or "").strip():
                raise ValidationFailed(f"{label} is required")
        if "@" not in self.email:
            raise ValidationFailed("Email is invalid")
        return self


@dataclass(frozen=True)
class PreparedCheckout:
    snapshot: CartSnapshot
    applied_coupon: Optional[AppliedCoupon]
    totals: Totals


def generate_order_number() -> str:
    """Epoch milliseconds plus a random suffix, e.g. 1760731200000K3F9QZ."""
    suffix = "".join(random.choice(_ALNUM) for _ in range(6))
    return f"{int(time.time() * 1000)}{suffix}"


def generate_admin_order_number() -> str:
    suffix = "".join(random.choice(_ALNUM) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def generate_payment_token() -> str:
    return secrets.token_urlsafe(24)


def snapshot_items(snapshot: CartSnapshot) -> List[Dict]:
    """Freeze the lines as {id, name, quantity, price}; later catalog edits never reach them."""
    return [
        {
            "id": line.offer_id,
            "name": line.title,
            "quantity": line.quantity,
            "price": float(round_money(line.price)),
        }
        for line in snapshot
    ]


class OrderWriter:
    """
    Turns a cart session into an immutable order.

    Totals are always recomputed from the live cart at write time; the order
    insert, coupon redemption and cart clear commit together or not at all.
    """

    def __init__(self, db: Session, broker: Optional[PaymentIntentBroker] = None):
        self.db = db
        self.broker = broker or PaymentIntentBroker()
        self.carts = CartService(db)
        self.cart_repo = CartRepository(db)
        self.coupons = CouponRepository(db)
        self.evaluator = CouponEvaluator(db)
        self.orders = OrderRepository(db)
        self.ledger = OrderLedger(db)
        self.idem = IdempotencyRepository(db)

    # -- pricing -----------------------------------------------------------

    def prepare(self, session: CartSession, coupon_code: Optional[str] = None) -> PreparedCheckout:
        snapshot = self.carts.snapshot(session)
        if snapshot.is_empty():
            raise CartEmpty("Your cart is empty")
        unavailable = [line.title for line in snapshot if not line.is_available]
        if unavailable:
            raise OfferUnavailable(
                "Some items are no longer available: " + ", ".join(unavailable),
                offers=unavailable,
            )

        subtotal = compute_totals(snapshot).subtotal
        applied = None
        if coupon_code and coupon_code.strip():
            applied = self.evaluator.evaluate(coupon_code, snapshot, subtotal)
        return PreparedCheckout(
            snapshot=snapshot, applied_coupon=applied, totals=compute_totals(snapshot, applied)
        )

    def create_checkout_intent(self, session: CartSession, coupon_code: Optional[str] = None) -> IntentResult:
        """Intent for the server-computed cart total, so the client never names the amount."""
        prepared = self.prepare(session, coupon_code)
        return self.broker.create_intent(
            prepared.totals.total,
            settings.DEFAULT_CURRENCY,
            metadata={"cart_session": session.token},
        )

    # -- writes ------------------------------------------------------------

    def place_order(
        self,
        customer: CustomerInfo,
        session: CartSession,
        coupon_code: Optional[str],
        payment_method: str,
        payment_status: str,
        payment_intent_id: Optional[str] = None,
    ) -> Order:
        customer.validate()
        prepared = self.prepare(session, coupon_code)
        return self._write(
            customer,
            session,
            prepared,
            payment_method=payment_method,
            status=payment_status,
            payment_intent_id=payment_intent_id,
            payment_captured=False,
        )

    def place_bank_transfer_order(
        self, customer: CustomerInfo, session: CartSession, coupon_code: Optional[str] = None
    ) -> Order:
        return self.place_order(
            customer,
            session,
            coupon_code,
            payment_method=PaymentMethod.BANK_TRANSFER.value,
            payment_status=OrderStatus.PENDING.value,
        )

    def place_card_order(
        self,
        customer: CustomerInfo,
        session: CartSession,
        coupon_code: Optional[str],
        payment_intent_id: str,
    ) -> Order:
        """
        Record a card order after the widget reports success.

        Safe to call repeatedly for the same intent: a repeat returns the order
        that was already written. The intent is re-read from the processor and
        must have succeeded; from then on the money is taken, so any failure to
        write the order surfaces as ReconciliationRequired.
        """
        customer.validate()
        if not payment_intent_id:
            raise ValidationFailed("payment_intent_id is required")

        existing = self.orders.get_by_payment_intent(payment_intent_id)
        if existing:
            log.info("card order for intent %s already recorded as %s", payment_intent_id, existing.order_number)
            return existing

        intent = self.broker.confirm_success(payment_intent_id)

        key = f"card-order:{payment_intent_id}"
        rec, created = self.idem.begin(key, "place_card_order")
        if not created:
            if rec.status == IdempotencyStatus.COMPLETED and rec.response_body:
                return self.ledger.get_by_number(rec.response_body["order_number"])
            if rec.status == IdempotencyStatus.IN_PROGRESS:
                self.db.rollback()
                raise DuplicateRequest("Duplicate request in progress, try again later")
            self.idem.restart(rec)

        try:
            prepared = self._prepare_captured(session, coupon_code, intent)
            return self._write(
                customer,
                session,
                prepared,
                payment_method=PaymentMethod.STRIPE.value,
                status=OrderStatus.PROCESSING.value,
                payment_intent_id=payment_intent_id,
                payment_captured=True,
                idempotency_key=key,
            )
        except Exception as e:
            # money is captured: record the failure and never retry
            log.error(
                "RECONCILIATION REQUIRED intent=%s session=%s amount_minor=%s error=%r",
                payment_intent_id,
                session.token,
                intent.amount_minor,
                e,
            )
            self.db.rollback()
            self._record_failure(key, "place_card_order", repr(e))
            raise ReconciliationRequired(
                RECONCILIATION_MESSAGE, payment_intent_id=payment_intent_id
            ) from e

    def _prepare_captured(
        self, session: CartSession, coupon_code: Optional[str], intent: PaymentIntentView
    ) -> PreparedCheckout:
        """
        Price the cart for a payment that already went through. Offer
        availability, the coupon's validity window and its usage limit are not
        re-checked; the recomputed total must still equal the captured amount.
        """
        snapshot = self.carts.snapshot(session)
        if snapshot.is_empty():
            raise CartEmpty("Your cart is empty")
        owner = intent.metadata.get("cart_session")
        if owner and owner != session.token:
            raise PaymentNotConfirmed("Payment belongs to a different cart")

        subtotal = compute_totals(snapshot).subtotal
        applied = None
        if coupon_code and coupon_code.strip():
            applied = self.evaluator.evaluate(coupon_code, snapshot, subtotal, captured=True)
        totals = compute_totals(snapshot, applied)
        if intent.amount_minor != to_minor_units(totals.total):
            raise PaymentNotConfirmed(
                "Payment amount does not match the order total",
                paid_minor=intent.amount_minor,
                total_minor=to_minor_units(totals.total),
            )
        return PreparedCheckout(snapshot=snapshot, applied_coupon=applied, totals=totals)

    def _write(
        self,
        customer: CustomerInfo,
        session: CartSession,
        prepared: PreparedCheckout,
        payment_method: str,
        status: str,
        payment_intent_id: Optional[str] = None,
        payment_captured: bool = False,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        applied = prepared.applied_coupon
        totals = prepared.totals
        order = Order(
            order_number=generate_order_number(),
            payment_token=generate_payment_token(),
            customer_name=customer.full_name.strip(),
            customer_email=customer.email.strip(),
            customer_contact=customer.contact.strip(),
            customer_country=customer.country.strip(),
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            coupon_code=applied.code if applied else None,
            total_amount=totals.total,
            currency=settings.DEFAULT_CURRENCY,
            status=status,
            payment_method=payment_method,
            payment_intent_id=payment_intent_id,
            items=snapshot_items(prepared.snapshot),
        )

        try:
            with smart_transaction(self.db):
                self.orders.add(order)
                if applied is not None:
                    self._redeem(applied, payment_captured)
                self.cart_repo.clear(session.token)
                if idempotency_key:
                    self.idem.mark_completed(idempotency_key, {"order_number": order.order_number})
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.info(
            "order %s placed method=%s status=%s subtotal=%s discount=%s total=%s coupon=%s",
            order.order_number,
            payment_method,
            status,
            totals.subtotal,
            totals.discount_amount,
            totals.total,
            order.coupon_code,
        )
        return order

    def _redeem(self, applied: AppliedCoupon, payment_captured: bool):
        if self.coupons.redeem(applied.coupon_id):
            return
        if payment_captured:
            # the customer already paid the discounted price; honour it
            log.error("coupon %s over-redeemed past its usage limit", applied.code)
            self.coupons.force_redeem(applied.coupon_id)
            return
        raise CouponError(CouponError.LIMIT_REACHED, "This coupon has reached its usage limit")

    def _record_failure(self, key: str, operation: str, message: str):
        try:
            self.idem.mark_failed(key, operation, message)
            self.db.commit()
        except Exception:
            self.db.rollback()
            log.exception("could not record failure for %s", key)

    # -- payment links -----------------------------------------------------

    def create_payment_link_order(self, customer: CustomerInfo, items: List[Dict]) -> Order:
        """
        Admin-created order paid later through /pay/{token}. Items are priced
        from the catalog now and frozen; no coupon applies.
        """
        if not (customer.full_name or "").strip() or not (customer.email or "").strip():
            raise ValidationFailed("Customer name and email are required")
        if not items:
            raise ValidationFailed("Add at least one item")

        quantities: Dict[int, int] = {}
        for it in items:
            qty = int(it.get("quantity", 1))
            if qty < 1:
                raise ValidationFailed("Quantity must be at least 1")
            offer_id = int(it["offer_id"])
            quantities[offer_id] = quantities.get(offer_id, 0) + qty

        offers = {o.id: o for o in CatalogRepository(self.db).get_offers_by_ids(quantities)}
        missing = [oid for oid in quantities if oid not in offers]
        if missing:
            raise OfferNotFound(f"Offer not found: {missing[0]}")

        frozen = [
            {
                "id": oid,
                "name": offers[oid].title,
                "quantity": qty,
                "price": float(round_money(offers[oid].price)),
            }
            for oid, qty in quantities.items()
        ]
        total = round_money(sum(D(offers[oid].price) * qty for oid, qty in quantities.items()))

        order = Order(
            order_number=generate_admin_order_number(),
            payment_token=generate_payment_token(),
            customer_name=customer.full_name.strip(),
            customer_email=customer.email.strip(),
            customer_contact=(customer.contact or "").strip(),
            customer_country=(customer.country or "").strip(),
            subtotal=total,
            discount_amount=D(0),
            total_amount=total,
            currency=settings.DEFAULT_CURRENCY,
            status=OrderStatus.PENDING.value,
            payment_method=PaymentMethod.PENDING.value,
            items=frozen,
        )
        try:
            with smart_transaction(self.db):
                self.orders.add(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("payment-link order %s created total=%s", order.order_number, total)
        return order

    def _payable_link_order(self, token: str) -> Order:
        order = self.ledger.get_by_payment_token(token)
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStatusTransition("This order has been cancelled")
        return order

    def create_link_intent(self, token: str) -> IntentResult:
        order = self._payable_link_order(token)
        if is_already_paid(order):
            raise InvalidStatusTransition("This order has already been paid")
        return self.broker.create_intent(
            order.total_amount, order.currency, metadata={"order_number": order.order_number}
        )

    def pay_link_by_bank_transfer(self, token: str) -> Order:
        order = self._payable_link_order(token)
        if is_already_paid(order):
            return order
        with smart_transaction(self.db):
            order.status = OrderStatus.PENDING.value
            order.payment_method = PaymentMethod.BANK_TRANSFER.value
            order.updated_at = datetime.now(timezone.utc)
            self.db.flush()
        self.db.commit()
        log.info("order %s: customer chose bank transfer", order.order_number)
        return order

    def pay_link_by_card(self, token: str, payment_intent_id: str) -> Order:
        """Client hint that the card payment for a link went through; verified before use."""
        order = self._payable_link_order(token)
        if is_already_paid(order):
            return order
        self.broker.confirm_success(payment_intent_id, expected_amount=order.total_amount)
        self._mark_card_paid(order, payment_intent_id)
        self.db.commit()
        return order

    def _mark_card_paid(self, order: Order, payment_intent_id: str):
        with smart_transaction(self.db):
            order.status = OrderStatus.PROCESSING.value
            order.payment_method = PaymentMethod.STRIPE.value
            order.payment_intent_id = payment_intent_id
            order.updated_at = datetime.now(timezone.utc)
            self.db.flush()
        log.info("order %s paid by card (intent %s)", order.order_number, payment_intent_id)

    # -- webhook -----------------------------------------------------------

    def handle_payment_webhook(self, event: WebhookEvent) -> Dict:
        """
        Authoritative confirmation from the processor. Each event id is handled
        once; a pending order tied to the intent moves to processing.
        """
        if event.type != "payment_intent.succeeded":
            log.info("webhook %s ignored (type=%s)", event.id, event.type)
            return {"received": True, "handled": False}

        key = f"webhook:{event.id}"
        rec, created = self.idem.begin(key, "payment_webhook")
        if not created:
            self.db.rollback()
            log.info("webhook %s already handled", event.id)
            return {"received": True, "handled": False, "duplicate": True}

        intent = event.data or {}
        intent_id = intent.get("id")
        order = self.orders.get_by_payment_intent(intent_id) if intent_id else None
        if order is None:
            number = (intent.get("metadata") or {}).get("order_number")
            order = self.orders.get_by_number(number) if number else None

        result = {"received": True, "handled": False}
        if order is None:
            # storefront card orders are written on the client callback; an intent
            # with no order means the customer paid but never came back
            log.warning("webhook %s: no order for intent %s", event.id, intent_id)
        elif order.status != OrderStatus.PENDING.value:
            result["order_number"] = order.order_number
        elif int(intent.get("amount") or 0) != to_minor_units(order.total_amount):
            log.error(
                "webhook %s: intent %s amount %s does not match order %s total %s",
                event.id,
                intent_id,
                intent.get("amount"),
                order.order_number,
                order.total_amount,
            )
        else:
            self._mark_card_paid(order, intent_id)
            result.update({"handled": True, "order_number": order.order_number})

        self.idem.mark_completed(key, result)
        self.db.commit()
        return result
