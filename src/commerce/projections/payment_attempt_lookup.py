"""Payment attempt lookup — resolves a gateway intent id to its attempt and order."""

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.payment.attempt import PaymentAttempt
from commerce.payment.events import (
    PaymentAttemptFailed,
    PaymentAttemptOpened,
    PaymentAttemptSucceeded,
    PaymentAttemptSuperseded,
)


@commerce.projection
class PaymentAttemptLookup:
    intent_id = Identifier(identifier=True, required=True)
    attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    amount = Float()
    currency = String(max_length=3)
    opened_at = DateTime()
    updated_at = DateTime()


@commerce.projector(projector_for=PaymentAttemptLookup, aggregates=[PaymentAttempt])
class PaymentAttemptLookupProjector:
    @on(PaymentAttemptOpened)
    def on_opened(self, event):
        current_domain.repository_for(PaymentAttemptLookup).add(
            PaymentAttemptLookup(
                intent_id=event.intent_id,
                attempt_id=event.attempt_id,
                order_id=event.order_id,
                status="requires_payment",
                amount=event.amount,
                currency=event.currency,
                opened_at=event.opened_at,
                updated_at=event.opened_at,
            )
        )

    def _set_status(self, intent_id, status, at):
        repo = current_domain.repository_for(PaymentAttemptLookup)
        lookup = repo.get(intent_id)
        lookup.status = status
        lookup.updated_at = at
        repo.add(lookup)

    @on(PaymentAttemptSucceeded)
    def on_succeeded(self, event):
        self._set_status(event.intent_id, "succeeded", event.gateway_status_at)

    @on(PaymentAttemptFailed)
    def on_failed(self, event):
        self._set_status(event.intent_id, event.status, event.gateway_status_at)

    @on(PaymentAttemptSuperseded)
    def on_superseded(self, event):
        self._set_status(event.intent_id, "superseded", event.superseded_at)


def find_by_intent(intent_id: str) -> PaymentAttemptLookup | None:
    return current_domain.repository_for(PaymentAttemptLookup)._dao.query.filter(intent_id=intent_id).all().first


def attempts_for_order(order_id: str) -> list[PaymentAttemptLookup]:
    return (
        current_domain.repository_for(PaymentAttemptLookup)
        ._dao.query.filter(order_id=order_id)
        .order_by("opened_at")
        .all()
        .items
    )
