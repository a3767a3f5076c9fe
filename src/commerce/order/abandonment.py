"""Abandonment sweep — cancels checkouts that were never paid.

Nothing in the request path auto-cancels; this sweep is the only place
pending orders time out. Orders whose payment succeeded or that wait for
manual reconciliation are never touched.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from commerce.config import get_settings
from commerce.errors import IllegalTransitionError
from commerce.order.transitions import ChangeOrderStatus
from commerce.payment.gateway import get_gateway
from commerce.payment.gateway.port import GatewayError
from commerce.projections.order_summary import pending_orders

logger = structlog.get_logger(__name__)

SWEEP_ACTOR = "abandonment-sweep"


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _is_abandoned(summary, cutoff: datetime) -> bool:
    if summary.needs_attention or summary.payment_status == "succeeded":
        return False
    return summary.created_at is not None and _as_utc(summary.created_at) <= cutoff


def sweep_abandoned_orders(older_than_minutes: int | None = None, now: datetime | None = None) -> list[str]:
    """Cancel pending orders older than the abandonment window.

    The open gateway intent is cancelled first; if the gateway refuses (the
    customer is paying right now) or is unreachable the order is left alone
    until the next sweep. Returns the ids of cancelled orders.
    """
    minutes = older_than_minutes if older_than_minutes is not None else get_settings().abandonment_minutes
    cutoff = (now or datetime.now(UTC)) - timedelta(minutes=minutes)
    gateway = get_gateway()

    cancelled = []
    for summary in pending_orders():
        if not _is_abandoned(summary, cutoff):
            continue

        if summary.payment_intent_id:
            try:
                gateway.cancel_payment_intent(summary.payment_intent_id)
            except GatewayError as exc:
                logger.info("Skipping abandoned order", order_id=str(summary.order_id), reason=str(exc))
                continue

        try:
            current_domain.process(
                ChangeOrderStatus(
                    order_id=str(summary.order_id),
                    to_status="cancelled",
                    actor_role="system",
                    actor_id=SWEEP_ACTOR,
                    comment=f"Checkout abandoned for more than {minutes} minutes",
                ),
                asynchronous=False,
            )
        except (IllegalTransitionError, ExpectedVersionError) as exc:
            # Advanced or cancelled concurrently; the next sweep will see the new state.
            logger.info("Order changed during sweep", order_id=str(summary.order_id), error=str(exc))
            continue
        cancelled.append(str(summary.order_id))

    logger.info("Abandonment sweep finished", cancelled=len(cancelled), cutoff=cutoff.isoformat())
    return cancelled
