"""Opening a payment attempt — command and handler.

A new attempt supersedes any earlier attempt that has not succeeded; the
old attempt is kept (marked superseded) and its gateway intent cancelled on
a best-effort basis.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.order.order import Order
from commerce.payment.attempt import PaymentAttempt
from commerce.payment.gateway import get_gateway
from commerce.payment.gateway.port import GatewayError
from commerce.projections.payment_attempt_lookup import attempts_for_order

logger = structlog.get_logger(__name__)


@commerce.command(part_of="PaymentAttempt")
class OpenPaymentAttempt:
    order_id = Identifier(required=True)


@commerce.command_handler(part_of=PaymentAttempt)
class OpenPaymentAttemptHandler:
    @handle(OpenPaymentAttempt)
    def open_attempt(self, command):
        order_repo = current_domain.repository_for(Order)
        attempt_repo = current_domain.repository_for(PaymentAttempt)
        gateway = get_gateway()

        order = order_repo.get(command.order_id)
        if not order.is_pending:
            raise ValidationError({"status": [f"Order is {order.status}; payment can only be taken while pending"]})

        existing = attempts_for_order(str(order.id))
        previous = [a for a in existing if a.status in ("requires_payment", "failed")]

        intent = gateway.create_payment_intent(
            amount=order.pricing.grand_total,
            currency=order.pricing.currency,
            order_id=str(order.id),
            idempotency_key=f"{order.id}:attempt-{len(existing) + 1}",
        )
        attempt = PaymentAttempt.open(order.id, intent)
        order.link_payment_attempt(attempt.id, intent.intent_id)

        for lookup in previous:
            stale = attempt_repo.get(lookup.attempt_id)
            if stale.supersede():
                attempt_repo.add(stale)
                _cancel_quietly(gateway, stale.intent_id)

        attempt_repo.add(attempt)
        order_repo.add(order)

        logger.info(
            "Payment attempt opened",
            order_id=str(order.id),
            attempt_id=str(attempt.id),
            intent_id=intent.intent_id,
            superseded=len(previous),
        )
        return {
            "attempt_id": str(attempt.id),
            "intent_id": intent.intent_id,
            "client_secret": intent.client_secret,
            "redirect_url": intent.redirect_url,
        }


def _cancel_quietly(gateway, intent_id: str) -> None:
    try:
        gateway.cancel_payment_intent(intent_id)
    except GatewayError as exc:
        logger.warning("Could not cancel superseded intent", intent_id=intent_id, error=str(exc))
