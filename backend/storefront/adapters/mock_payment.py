import threading
import time
from typing import Dict, Optional
from uuid import uuid4

from storefront.errors import PaymentError


class MockPaymentProcessor:
    """
    In-memory stand-in for the card processor, used in development and tests.

    Intents start as ``requires_payment_method``; ``mark_succeeded`` plays the part
    of the hosted card widget completing the payment. Metadata ``force_decline``
    makes intent creation fail the way a processor rejection would.
    """

    name = "mock"

    def __init__(self, delay_ms: int = 0):
        # Convert delay from milliseconds to seconds for time.sleep
        self.delay_seconds = delay_ms / 1000.0
        self._intents: Dict[str, Dict] = {}
        self._lock = threading.Lock()

    def create_intent(self, amount_minor: int, currency: str, metadata: Optional[Dict] = None) -> Dict:
        # Simulate network latency / gateway processing
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

        metadata = dict(metadata or {})
        if str(metadata.get("force_decline", "")).lower() in ("1", "true"):
            raise PaymentError(
                PaymentError.PROCESSOR_REJECTED, "Simulated processor rejection", status_code=402
            )

        intent_id = f"pi_mock_{uuid4().hex[:24]}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_{uuid4().hex[:16]}",
            "amount": amount_minor,
            "currency": currency,
            "status": "requires_payment_method",
            "metadata": metadata,
        }
        with self._lock:
            self._intents[intent_id] = intent
        return dict(intent)

    def retrieve_intent(self, intent_id: str) -> Dict:
        with self._lock:
            intent = self._intents.get(intent_id)
        if not intent:
            raise PaymentError(
                PaymentError.PROCESSOR_REJECTED, f"No such payment_intent: '{intent_id}'", status_code=404
            )
        return dict(intent)

    def mark_succeeded(self, intent_id: str) -> Dict:
        with self._lock:
            intent = self._intents[intent_id]
            intent["status"] = "succeeded"
            return dict(intent)

    def health_check(self) -> bool:
        return True
