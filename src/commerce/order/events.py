"""Domain events for the Order aggregate.

Every state change is one event; @apply handlers on the aggregate rebuild
state from them. A status change and its history row travel in the same
event, so they are persisted (or rejected) together.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from commerce.domain import commerce


@commerce.event(part_of="Order")
class OrderPlaced:
    """A priced cart snapshot was recorded as a pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_ref = String(required=True)
    lines = Text(required=True)  # JSON: list of frozen line dicts
    billing_address = Text(required=True)  # JSON: address dict
    shipping_address = Text(required=True)  # JSON: address dict
    subtotal = Float(required=True)
    shipping_cost = Float(default=0.0)
    tax_total = Float(default=0.0)
    discount_total = Float(default=0.0)
    grand_total = Float(required=True)
    currency = String(required=True)
    history_entry_id = Identifier(required=True)
    placed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderStatusChanged:
    """The order moved along the state machine; carries its history row."""

    __version__ = 1

    order_id = Identifier(required=True)
    change_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor_role = String(required=True)
    actor_id = String()
    comment = String(max_length=500)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class PaymentAttemptLinked:
    """A new payment attempt became the order's current one."""

    __version__ = 1

    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    intent_id = String(required=True)
    linked_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderPaymentStatusChanged:
    """The current attempt's gateway outcome, mirrored onto the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    payment_status = String(required=True)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderFlaggedForAttention:
    """Money and stock disagree; the order waits for manual reconciliation."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    flagged_at = DateTime(required=True)
