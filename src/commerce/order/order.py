"""Order aggregate (Event Sourced) — the order state machine.

State machine:
    pending → processing → shipped → delivered
    pending → cancelled, processing → cancelled

Who may move an order is part of the transition table: only payment
reconciliation (system) advances pending → processing, admins drive
fulfillment, and customers may only cancel while the order is pending.
Anything else raises IllegalTransitionError and leaves the order unchanged.

Line items and prices are frozen when the order is placed. Every status
change appends exactly one history row, carried by the same event.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import apply
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from commerce.domain import commerce
from commerce.errors import IllegalTransitionError
from commerce.order.events import (
    OrderFlaggedForAttention,
    OrderPaymentStatusChanged,
    OrderPlaced,
    OrderStatusChanged,
    PaymentAttemptLinked,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ActorRole(Enum):
    CUSTOMER = "customer"
    SYSTEM = "system"
    GATEWAY = "gateway"
    ADMIN = "admin"


class PaymentStatus(Enum):
    REQUIRES_PAYMENT = "requires_payment"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


# (from, to) -> roles allowed to request it. The gateway never moves an order
# itself; its outcomes reach the order through reconciliation as the system.
_TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.PROCESSING): {ActorRole.SYSTEM},
    (OrderStatus.PENDING, OrderStatus.CANCELLED): {ActorRole.CUSTOMER, ActorRole.SYSTEM, ActorRole.ADMIN},
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED): {ActorRole.ADMIN},
    (OrderStatus.PROCESSING, OrderStatus.DELIVERED): {ActorRole.ADMIN},
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED): {ActorRole.ADMIN},
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): {ActorRole.ADMIN},
}

TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


def allowed_targets(status, actor_role) -> set:
    """Statuses the given actor may move an order to from ``status``."""
    status, role = OrderStatus(status), ActorRole(actor_role)
    return {to for (frm, to), roles in _TRANSITIONS.items() if frm == status and role in roles}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@commerce.value_object(part_of="Order")
class Address:
    """Billing or shipping address, snapshotted at checkout."""

    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    email = String(max_length=254)
    phone = String(max_length=50)
    address_line1 = String(required=True, max_length=255)
    address_line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)


@commerce.value_object(part_of="Order")
class OrderPricing:
    subtotal = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    tax_total = Float(default=0.0)
    discount_total = Float(default=0.0)
    grand_total = Float(default=0.0)
    currency = String(max_length=3, default="EUR")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@commerce.entity(part_of="Order")
class OrderLine:
    """A purchased product with the price it had at checkout."""

    product_id = Identifier(required=True)
    sku = String(required=True, max_length=64)
    title = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)


@commerce.entity(part_of="Order")
class StatusChange:
    from_status = String(max_length=20)
    to_status = String(required=True, max_length=20)
    actor_role = String(required=True, max_length=20)
    actor_id = String(max_length=255)
    comment = String(max_length=500)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@commerce.aggregate(is_event_sourced=True)
class Order:
    order_number = String(max_length=20)
    customer_ref = String(required=True, max_length=255)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    lines = HasMany(OrderLine)
    history = HasMany(StatusChange)
    billing_address = ValueObject(Address)
    shipping_address = ValueObject(Address)
    pricing = ValueObject(OrderPricing)
    payment_status = String(choices=PaymentStatus)
    payment_attempt_id = Identifier()
    payment_intent_id = String(max_length=255)
    needs_attention = Boolean(default=False)
    attention_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, order_number, customer_ref, snapshot, billing_address, shipping_address):
        """Record a cart snapshot as a new pending order.

        Args:
            order_number: Human-facing number, ORD-YYYYMMDD-NNNN.
            customer_ref: Customer id or guest email.
            snapshot: A CartSnapshot; its prices become the order's prices.
            billing_address: Address dict.
            shipping_address: Address dict.
        """
        lines = [{**line.to_dict(), "id": str(uuid4())} for line in snapshot.lines]

        order = cls._create_new()
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_ref=customer_ref,
                lines=json.dumps(lines),
                billing_address=json.dumps(billing_address),
                shipping_address=json.dumps(shipping_address),
                subtotal=float(snapshot.subtotal),
                shipping_cost=float(snapshot.shipping_cost),
                tax_total=float(snapshot.tax_total),
                discount_total=float(snapshot.discount_total),
                grand_total=float(snapshot.grand_total),
                currency=snapshot.currency,
                history_entry_id=str(uuid4()),
                placed_at=datetime.now(UTC),
            )
        )
        return order

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def transition_to(self, target, actor_role, actor_id=None, comment=None):
        """Move the order to ``target`` on behalf of ``actor_role``."""
        current = OrderStatus(self.status)
        role = ActorRole(actor_role)
        try:
            target = OrderStatus(target)
        except ValueError as exc:
            raise ValidationError({"status": [f"Unknown order status: {target}"]}) from exc

        allowed = allowed_targets(current, role)
        if self.is_terminal or target not in allowed:
            raise IllegalTransitionError(
                str(self.id),
                current.value,
                target.value,
                role.value,
                allowed=sorted(status.value for status in allowed),
            )

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                change_id=str(uuid4()),
                from_status=current.value,
                to_status=target.value,
                actor_role=role.value,
                actor_id=actor_id,
                comment=comment,
                changed_at=datetime.now(UTC),
            )
        )

    @property
    def is_pending(self) -> bool:
        return OrderStatus(self.status) == OrderStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATES

    # -------------------------------------------------------------------
    # Payment bookkeeping
    # -------------------------------------------------------------------
    def link_payment_attempt(self, attempt_id, intent_id):
        if not self.is_pending:
            raise ValidationError({"status": [f"Order is {self.status}; payment can only be taken while pending"]})
        self.raise_(
            PaymentAttemptLinked(
                order_id=str(self.id),
                attempt_id=str(attempt_id),
                intent_id=intent_id,
                linked_at=datetime.now(UTC),
            )
        )

    def record_payment_status(self, attempt_id, payment_status) -> bool:
        """Mirror the current attempt's outcome. Outcomes of older attempts are ignored."""
        payment_status = PaymentStatus(payment_status)
        if str(attempt_id) != str(self.payment_attempt_id) or self.payment_status == payment_status.value:
            return False
        self.raise_(
            OrderPaymentStatusChanged(
                order_id=str(self.id),
                attempt_id=str(attempt_id),
                payment_status=payment_status.value,
                changed_at=datetime.now(UTC),
            )
        )
        return True

    def flag_for_attention(self, reason):
        if self.needs_attention and self.attention_reason == reason:
            return
        self.raise_(
            OrderFlaggedForAttention(
                order_id=str(self.id),
                reason=reason,
                flagged_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Event replay
    # -------------------------------------------------------------------
    @apply
    def _on_order_placed(self, event: OrderPlaced):
        self.id = event.order_id
        self.order_number = event.order_number
        self.customer_ref = event.customer_ref
        self.status = OrderStatus.PENDING.value
        self.created_at = event.placed_at
        self.updated_at = event.placed_at

        self.lines = [OrderLine(**line) for line in json.loads(event.lines)]
        self.billing_address = Address(**json.loads(event.billing_address))
        self.shipping_address = Address(**json.loads(event.shipping_address))
        self.pricing = OrderPricing(
            subtotal=event.subtotal,
            shipping_cost=event.shipping_cost or 0.0,
            tax_total=event.tax_total or 0.0,
            discount_total=event.discount_total or 0.0,
            grand_total=event.grand_total,
            currency=event.currency,
        )
        self.history = [
            StatusChange(
                id=event.history_entry_id,
                from_status=None,
                to_status=OrderStatus.PENDING.value,
                actor_role=ActorRole.CUSTOMER.value,
                actor_id=event.customer_ref,
                comment="Order created",
                changed_at=event.placed_at,
            )
        ]

    @apply
    def _on_status_changed(self, event: OrderStatusChanged):
        self.status = event.to_status
        self.updated_at = event.changed_at
        self.add_history(
            StatusChange(
                id=event.change_id,
                from_status=event.from_status,
                to_status=event.to_status,
                actor_role=event.actor_role,
                actor_id=event.actor_id,
                comment=event.comment,
                changed_at=event.changed_at,
            )
        )
        if event.to_status == OrderStatus.PROCESSING.value:
            self.needs_attention = False
            self.attention_reason = None

    @apply
    def _on_payment_attempt_linked(self, event: PaymentAttemptLinked):
        self.payment_attempt_id = event.attempt_id
        self.payment_intent_id = event.intent_id
        self.payment_status = PaymentStatus.REQUIRES_PAYMENT.value
        self.updated_at = event.linked_at

    @apply
    def _on_payment_status_changed(self, event: OrderPaymentStatusChanged):
        self.payment_status = event.payment_status
        self.updated_at = event.changed_at

    @apply
    def _on_flagged_for_attention(self, event: OrderFlaggedForAttention):
        self.needs_attention = True
        self.attention_reason = event.reason
        self.updated_at = event.flagged_at
