"""Configurable fake payment gateway for development and testing.

Simulates an intent-based gateway without external calls. Intents live in
memory; ``complete()`` plays the part of the customer finishing (or failing)
payment on the gateway's page, and ``sign()`` produces the signature a real
gateway would put on a webhook.
"""

import hashlib
import hmac
import threading
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from commerce.payment.gateway.port import GatewayError, PaymentGateway, PaymentIntent


class FakeGateway(PaymentGateway):
    """In-memory intent-based gateway."""

    def __init__(self, webhook_secret: str = "whsec_test") -> None:
        self.webhook_secret = webhook_secret
        self.available: bool = True
        self.calls: list[dict] = []
        self._intents: dict[str, PaymentIntent] = {}
        self._by_idempotency_key: dict[str, str] = {}
        self._lock = threading.Lock()

    def configure(self, available: bool = True) -> None:
        """Make the gateway reachable or unreachable."""
        self.available = available

    def _check_available(self) -> None:
        if not self.available:
            raise GatewayError("Payment gateway unavailable")

    def create_payment_intent(self, amount, currency, order_id, idempotency_key):
        self.calls.append(
            {
                "method": "create_payment_intent",
                "amount": amount,
                "currency": currency,
                "order_id": order_id,
                "idempotency_key": idempotency_key,
            }
        )
        self._check_available()

        with self._lock:
            existing = self._by_idempotency_key.get(idempotency_key)
            if existing is not None:
                return self._intents[existing]

            intent_id = f"pi_fake_{uuid4().hex[:16]}"
            intent = PaymentIntent(
                intent_id=intent_id,
                client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
                status="requires_payment",
                amount=Decimal(str(amount)),
                currency=currency,
                updated_at=datetime.now(UTC),
                redirect_url=f"https://pay.example.test/checkout/{intent_id}",
            )
            self._intents[intent_id] = intent
            self._by_idempotency_key[idempotency_key] = intent_id
            return intent

    def retrieve_payment_intent(self, intent_id):
        self.calls.append({"method": "retrieve_payment_intent", "intent_id": intent_id})
        self._check_available()
        try:
            return self._intents[intent_id]
        except KeyError as exc:
            raise GatewayError(f"No such payment intent: {intent_id}") from exc

    def cancel_payment_intent(self, intent_id):
        self.calls.append({"method": "cancel_payment_intent", "intent_id": intent_id})
        self._check_available()
        with self._lock:
            intent = self._intents.get(intent_id)
            if intent is None:
                raise GatewayError(f"No such payment intent: {intent_id}")
            if intent.status == "succeeded":
                raise GatewayError(f"Payment intent {intent_id} already succeeded")
            intent = replace(intent, status="canceled", updated_at=datetime.now(UTC))
            self._intents[intent_id] = intent
            return intent

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(payload), signature)

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def complete(self, intent_id: str, status: str = "succeeded", failure_reason: str | None = None) -> PaymentIntent:
        """Simulate the customer finishing payment on the gateway side."""
        with self._lock:
            intent = replace(
                self._intents[intent_id],
                status=status,
                failure_reason=failure_reason,
                updated_at=datetime.now(UTC),
            )
            self._intents[intent_id] = intent
            return intent

    def sign(self, payload: bytes | str) -> str:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return hmac.new(self.webhook_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
