"""Inventory reacts to order events — hands stock back when an order is cancelled.

Cancelling a processing order returns everything the coordinator took. A
pending order normally has nothing committed, but one whose advancement
failed after the decrement does, and gets the same treatment.
"""

import structlog
from protean.utils.mixins import handle

from commerce.domain import commerce
from commerce.inventory.coordinator import SYSTEM_ACTOR, release_order_stock
from commerce.order.events import OrderStatusChanged
from commerce.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@commerce.event_handler(part_of=Order)
class OrderStockEventHandler:
    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        if event.to_status != OrderStatus.CANCELLED.value:
            return

        returned = release_order_stock(str(event.order_id), actor_id=event.actor_id or SYSTEM_ACTOR)
        logger.info(
            "Processed stock release for cancelled order",
            order_id=str(event.order_id),
            from_status=event.from_status,
            movements=len(returned),
        )
