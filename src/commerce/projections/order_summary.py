"""Order summary — the cheap read behind status polling, lookups and sweeps."""

import json

from protean.core.projector import on
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.order.events import (
    OrderFlaggedForAttention,
    OrderPaymentStatusChanged,
    OrderPlaced,
    OrderStatusChanged,
    PaymentAttemptLinked,
)
from commerce.order.order import Order


@commerce.projection
class OrderSummary:
    order_id = Identifier(identifier=True, required=True)
    order_number = String(required=True, max_length=20)
    customer_ref = String(required=True, max_length=255)
    status = String(required=True, max_length=20)
    payment_status = String(max_length=20)
    payment_intent_id = String(max_length=255)
    item_count = Integer(default=0)
    grand_total = Float()
    currency = String(max_length=3)
    needs_attention = Boolean(default=False)
    attention_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()


@commerce.projector(projector_for=OrderSummary, aggregates=[Order])
class OrderSummaryProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        lines = json.loads(event.lines)
        current_domain.repository_for(OrderSummary).add(
            OrderSummary(
                order_id=event.order_id,
                order_number=event.order_number,
                customer_ref=event.customer_ref,
                status="pending",
                item_count=sum(line["quantity"] for line in lines),
                grand_total=event.grand_total,
                currency=event.currency,
                created_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    @on(OrderStatusChanged)
    def on_status_changed(self, event):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(event.order_id)
        summary.status = event.to_status
        summary.updated_at = event.changed_at
        if event.to_status == "processing":
            summary.needs_attention = False
            summary.attention_reason = None
        repo.add(summary)

    @on(PaymentAttemptLinked)
    def on_payment_attempt_linked(self, event):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(event.order_id)
        summary.payment_status = "requires_payment"
        summary.payment_intent_id = event.intent_id
        summary.updated_at = event.linked_at
        repo.add(summary)

    @on(OrderPaymentStatusChanged)
    def on_payment_status_changed(self, event):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(event.order_id)
        summary.payment_status = event.payment_status
        summary.updated_at = event.changed_at
        repo.add(summary)

    @on(OrderFlaggedForAttention)
    def on_flagged_for_attention(self, event):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(event.order_id)
        summary.needs_attention = True
        summary.attention_reason = event.reason
        summary.updated_at = event.flagged_at
        repo.add(summary)


# Protean caps a query at 100 rows unless told otherwise; read in pages.
PAGE_SIZE = 100


def _query():
    return current_domain.repository_for(OrderSummary)._dao.query


def _every(query) -> list[OrderSummary]:
    items, offset = [], 0
    while True:
        page = query.offset(offset).limit(PAGE_SIZE).all().items
        items.extend(page)
        if len(page) < PAGE_SIZE:
            return items
        offset += PAGE_SIZE


def find_by_number(order_number: str) -> OrderSummary | None:
    return _query().filter(order_number=order_number).all().first


def pending_orders() -> list[OrderSummary]:
    """Every pending order, oldest first."""
    return _every(_query().filter(status="pending").order_by("created_at"))


def orders_needing_attention() -> list[OrderSummary]:
    return _every(_query().filter(needs_attention=True).order_by("created_at"))


def orders_for_customer(customer_ref: str) -> list[OrderSummary]:
    """A customer's orders, newest first."""
    return _every(_query().filter(customer_ref=customer_ref).order_by("-created_at"))


def orders_by_status(status: str | None = None) -> list[OrderSummary]:
    query = _query().filter(status=status) if status else _query()
    return _every(query.order_by("-created_at"))
