"""Payment gateway port (abstract interface).

The engine only ever talks to a gateway through this contract: open an
intent, read its authoritative status, cancel it, and authenticate webhook
payloads. Client-supplied payment status is never trusted.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


class GatewayError(Exception):
    """The gateway could not be reached or refused the request."""


@dataclass(frozen=True)
class PaymentIntent:
    """Gateway-side view of a payment intent."""

    intent_id: str
    client_secret: str
    status: str  # requires_payment | processing | succeeded | failed | canceled
    amount: Decimal
    currency: str
    updated_at: datetime
    redirect_url: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        order_id: str,
        idempotency_key: str,
    ) -> PaymentIntent:
        """Open an intent for the full order amount."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        """Read the authoritative intent status."""
        ...

    @abstractmethod
    def cancel_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
