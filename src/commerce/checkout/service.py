"""Checkout — place an order from a cart and open its first payment attempt."""

import json
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from commerce.order.order import Order
from commerce.order.placement import PlaceOrder
from commerce.payment.gateway.port import GatewayError
from commerce.payment.opening import OpenPaymentAttempt

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    order_number: str
    grand_total: float
    currency: str
    payment: dict | None  # attempt_id, intent_id, client_secret, redirect_url


def checkout(customer_ref: str, lines: list[dict], billing_address: dict, shipping_address: dict) -> CheckoutResult:
    """Create a pending order and hand back what the client needs to pay.

    If the gateway cannot open an intent the order still exists (pending,
    no attempt) and the client can retry payment later.
    """
    order_id = current_domain.process(
        PlaceOrder(
            customer_ref=customer_ref,
            lines=json.dumps(lines),
            billing_address=json.dumps(billing_address),
            shipping_address=json.dumps(shipping_address),
        ),
        asynchronous=False,
    )

    try:
        payment = open_payment_attempt(order_id)
    except GatewayError as exc:
        logger.warning("Order placed without payment attempt", order_id=order_id, error=str(exc))
        payment = None

    order = current_domain.repository_for(Order).get(order_id)
    return CheckoutResult(
        order_id=str(order.id),
        order_number=order.order_number,
        grand_total=order.pricing.grand_total,
        currency=order.pricing.currency,
        payment=payment,
    )


def open_payment_attempt(order_id: str) -> dict:
    return current_domain.process(OpenPaymentAttempt(order_id=order_id), asynchronous=False)
