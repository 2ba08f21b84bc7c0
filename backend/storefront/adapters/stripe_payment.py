from typing import Dict, Optional

import requests

from storefront.errors import PaymentError
from storefront.utils.log import get_logger

log = get_logger("stripe")


class StripePaymentProcessor:
    """
    Minimal Stripe REST client for payment intents (form-encoded, bearer auth).

    Only the two calls checkout needs: create an intent for the hosted card
    widget, and read it back so the server can check it really succeeded.
    """

    name = "stripe"

    def __init__(
        self,
        secret_key: Optional[str],
        api_base: str = "https://api.stripe.com/v1",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        if not self.secret_key:
            log.error("STRIPE_SECRET_KEY not configured")
            raise PaymentError(
                PaymentError.NOT_CONFIGURED,
                "Stripe configuration missing. Please set STRIPE_SECRET_KEY.",
            )
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    def _handle(self, resp: requests.Response) -> Dict:
        if resp.ok:
            return resp.json()
        try:
            message = resp.json().get("error", {}).get("message")
        except ValueError:
            message = None
        log.error("Stripe API error status=%s message=%s", resp.status_code, message)
        raise PaymentError(
            PaymentError.PROCESSOR_REJECTED,
            message or "Payment intent creation failed",
            status_code=resp.status_code,
        )

    def create_intent(self, amount_minor: int, currency: str, metadata: Optional[Dict] = None) -> Dict:
        data = {
            "amount": str(amount_minor),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in (metadata or {}).items():
            data[f"metadata[{key}]"] = str(value)
        headers = self._headers()
        try:
            resp = self.http.post(
                f"{self.api_base}/payment_intents", data=data, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            log.error("Stripe request failed: %s", e)
            raise PaymentError(PaymentError.NETWORK_ERROR, f"Network error: {e}")
        return self._handle(resp)

    def retrieve_intent(self, intent_id: str) -> Dict:
        headers = self._headers()
        try:
            resp = self.http.get(
                f"{self.api_base}/payment_intents/{intent_id}", headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            log.error("Stripe request failed: %s", e)
            raise PaymentError(PaymentError.NETWORK_ERROR, f"Network error: {e}")
        return self._handle(resp)

    def health_check(self) -> bool:
        return bool(self.secret_key)
