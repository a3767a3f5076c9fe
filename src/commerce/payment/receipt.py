"""Gateway event receipts — one row per authenticated webhook event id."""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, String
from protean.utils.globals import current_domain

from commerce.domain import commerce


@commerce.aggregate
class GatewayEventReceipt:
    event_id = String(identifier=True, max_length=255)
    intent_id = String(required=True, max_length=255)
    event_type = String(max_length=100)
    outcome = String(max_length=50)
    received_at = DateTime(required=True)


def already_processed(event_id: str) -> GatewayEventReceipt | None:
    try:
        return current_domain.repository_for(GatewayEventReceipt).get(event_id)
    except ObjectNotFoundError:
        return None


def record_receipt(event_id: str, intent_id: str, event_type: str, outcome: str) -> None:
    current_domain.repository_for(GatewayEventReceipt).add(
        GatewayEventReceipt(
            event_id=event_id,
            intent_id=intent_id,
            event_type=event_type,
            outcome=outcome,
            received_at=datetime.now(UTC),
        )
    )
