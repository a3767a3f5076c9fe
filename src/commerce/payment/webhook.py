"""Gateway webhook processing.

Signature verification happens at the HTTP edge, before this module sees
the event. Here every event id is processed at most once; the outcome is
recorded on a receipt so redeliveries are answered without touching state.
"""

from datetime import datetime

import structlog

from commerce.errors import InsufficientStockError
from commerce.payment.receipt import already_processed, record_receipt
from commerce.payment.reconciliation import ReconciliationResult, reconcile_payment

logger = structlog.get_logger(__name__)

EVENT_TYPE_STATUSES = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "canceled",
    "payment_intent.processing": "processing",
}


def status_for(event_type: str, reported_status: str | None = None) -> str | None:
    return reported_status or EVENT_TYPE_STATUSES.get(event_type)


def handle_gateway_event(
    event_id: str,
    event_type: str,
    intent_id: str,
    status: str | None = None,
    occurred_at: datetime | None = None,
    failure_reason: str | None = None,
) -> ReconciliationResult:
    receipt = already_processed(event_id)
    if receipt is not None:
        logger.info("Duplicate gateway event", event_id=event_id, intent_id=intent_id, outcome=receipt.outcome)
        return ReconciliationResult("duplicate")

    status = status_for(event_type, status)
    if status is None:
        logger.info("Ignoring gateway event type", event_id=event_id, event_type=event_type)
        record_receipt(event_id, intent_id, event_type, "ignored")
        return ReconciliationResult("ignored")

    try:
        result = reconcile_payment(
            intent_id,
            status,
            occurred_at=occurred_at,
            event_id=event_id,
            source="webhook",
            failure_reason=failure_reason,
        )
    except InsufficientStockError as exc:
        record_receipt(event_id, intent_id, event_type, "needs_attention")
        return ReconciliationResult("needs_attention", exc.order_id, "pending", "succeeded")

    record_receipt(event_id, intent_id, event_type, result.outcome)
    return result
