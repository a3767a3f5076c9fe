"""Payment reconciliation — the single entry point for gateway outcomes.

Client-side confirmation and gateway webhooks are equals: both end up in
``reconcile_payment`` and are safe to run concurrently for the same intent.
A succeeded outcome flips the attempt first (exactly once), then runs the
coordinated advancement: stock decrement, then pending → processing. If the
advancement hits a storage conflict the whole step is retried from here; the
attempt stays succeeded and the customer is never charged again.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.errors import IllegalTransitionError, InsufficientStockError, PaymentReconciliationConflictError
from commerce.inventory.coordinator import commit_order_stock, release_order_stock
from commerce.order.order import Order, OrderStatus, PaymentStatus
from commerce.order.transitions import ChangeOrderStatus, FlagOrderForAttention, RecordOrderPaymentStatus
from commerce.payment.attempt import PaymentAttempt
from commerce.payment.gateway import get_gateway
from commerce.projections.payment_attempt_lookup import find_by_intent
from commerce.utils.retry import retry_on_conflict

logger = structlog.get_logger(__name__)

_MIRRORED = {status.value for status in PaymentStatus}


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: str  # advanced | recorded | unchanged | ignored | needs_attention | duplicate
    order_id: str | None = None
    order_status: str | None = None
    payment_status: str | None = None


@commerce.command(part_of="PaymentAttempt")
class RecordGatewayOutcome:
    attempt_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    occurred_at = DateTime()
    event_id = String(max_length=255)
    source = String(required=True, max_length=30)
    failure_reason = String(max_length=500)


@commerce.command_handler(part_of=PaymentAttempt)
class RecordGatewayOutcomeHandler:
    @handle(RecordGatewayOutcome)
    def record_outcome(self, command):
        repo = current_domain.repository_for(PaymentAttempt)
        attempt = repo.get(command.attempt_id)
        changed = attempt.record_outcome(
            command.status,
            occurred_at=command.occurred_at,
            event_id=command.event_id,
            source=command.source,
            failure_reason=command.failure_reason,
        )
        if changed:
            repo.add(attempt)
        return changed


def _result(outcome: str, order_id: str | None) -> ReconciliationResult:
    if order_id is None:
        return ReconciliationResult(outcome)
    order = current_domain.repository_for(Order).get(order_id)
    return ReconciliationResult(outcome, str(order.id), order.status, order.payment_status)


def _flag(order_id: str, reason: str) -> None:
    current_domain.process(FlagOrderForAttention(order_id=order_id, reason=reason), asynchronous=False)


def _cancelled_after_payment(order_id: str, attempt: PaymentAttempt) -> ReconciliationResult:
    # Hand back anything committed by an advancement that lost the race.
    release_order_stock(order_id)
    _flag(order_id, f"Payment {attempt.intent_id} succeeded after the order was cancelled; refund required")
    logger.warning("Payment succeeded for cancelled order", order_id=order_id, intent_id=attempt.intent_id)
    return _result("needs_attention", order_id)


def _advance(attempt: PaymentAttempt, source: str) -> ReconciliationResult:
    order_id = str(attempt.order_id)
    order = current_domain.repository_for(Order).get(order_id)
    status = OrderStatus(order.status)

    if status == OrderStatus.CANCELLED:
        return _cancelled_after_payment(order_id, attempt)
    if status != OrderStatus.PENDING:
        return _result("unchanged", order_id)

    lines = [(str(line.product_id), line.quantity) for line in order.lines]
    try:
        commit_order_stock(order_id, lines)
    except InsufficientStockError as exc:
        _flag(
            order_id,
            f"Paid but out of stock: {exc.product_id} needs {exc.requested}, {exc.available} available",
        )
        raise

    try:
        current_domain.process(
            ChangeOrderStatus(
                order_id=order_id,
                to_status=OrderStatus.PROCESSING.value,
                actor_role="system",
                actor_id=f"payment:{source}",
                comment="Payment confirmed",
            ),
            asynchronous=False,
        )
    except IllegalTransitionError:
        # The order moved while stock was being committed.
        current = OrderStatus(current_domain.repository_for(Order).get(order_id).status)
        if current == OrderStatus.CANCELLED:
            return _cancelled_after_payment(order_id, attempt)
        if current == OrderStatus.PENDING:
            raise
        logger.info("Order already advanced", order_id=order_id, status=current.value, source=source)
        return _result("unchanged", order_id)

    logger.info("Order advanced after payment", order_id=order_id, intent_id=attempt.intent_id, source=source)
    return _result("advanced", order_id)


def _reconcile_once(intent_id, status, occurred_at, event_id, source, failure_reason) -> ReconciliationResult:
    lookup = find_by_intent(intent_id)
    if lookup is None:
        logger.warning("Gateway outcome for unknown intent", intent_id=intent_id, status=status, source=source)
        return ReconciliationResult("ignored")
    order_id = str(lookup.order_id)

    try:
        changed = current_domain.process(
            RecordGatewayOutcome(
                attempt_id=str(lookup.attempt_id),
                status=status,
                occurred_at=occurred_at,
                event_id=event_id,
                source=source,
                failure_reason=failure_reason,
            ),
            asynchronous=False,
        )
    except PaymentReconciliationConflictError as exc:
        logger.info("Absorbed gateway event", source=source, event_id=event_id, **exc.context)
        if exc.attempt_status == "superseded" and exc.incoming_status == "succeeded":
            _flag(order_id, f"Payment captured on superseded intent {intent_id}; refund or reassign required")
            return _result("needs_attention", order_id)
        return _result("ignored", order_id)

    attempt = current_domain.repository_for(PaymentAttempt).get(str(lookup.attempt_id))
    if attempt.status in _MIRRORED:
        current_domain.process(
            RecordOrderPaymentStatus(order_id=order_id, attempt_id=str(attempt.id), payment_status=attempt.status),
            asynchronous=False,
        )

    if attempt.succeeded:
        return _advance(attempt, source)
    return _result("recorded" if changed else "unchanged", order_id)


def reconcile_payment(
    intent_id: str,
    status: str,
    occurred_at: datetime | None = None,
    event_id: str | None = None,
    source: str = "webhook",
    failure_reason: str | None = None,
) -> ReconciliationResult:
    """Apply a gateway-reported outcome for ``intent_id``.

    Duplicate and out-of-order events are absorbed. Raises
    InsufficientStockError when a paid order cannot be fulfilled (the order
    is flagged for manual reconciliation first) and StorageConflictError when
    retries are exhausted.
    """
    return retry_on_conflict(_reconcile_once, intent_id, status, occurred_at, event_id, source, failure_reason)


def confirm_payment(order_id: str) -> ReconciliationResult:
    """Client-side confirmation: re-read the intent from the gateway and reconcile.

    Whatever the client believes about the payment is ignored.
    """
    order = current_domain.repository_for(Order).get(order_id)
    if not order.payment_intent_id:
        raise ValidationError({"order_id": ["Order has no payment attempt to confirm"]})

    intent = get_gateway().retrieve_payment_intent(order.payment_intent_id)
    return reconcile_payment(
        intent.intent_id,
        intent.status,
        occurred_at=intent.updated_at,
        source="client_confirmation",
        failure_reason=intent.failure_reason,
    )
