"""Order placement — command and handler."""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from commerce.cart.snapshot import CartLine, build_snapshot
from commerce.domain import commerce
from commerce.order.numbering import allocate_order_number
from commerce.order.order import Order

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Order")
class PlaceOrder:
    customer_ref = String(required=True, max_length=255)
    lines = Text(required=True)  # JSON: [{"product_id": ..., "quantity": ...}]
    billing_address = Text(required=True)  # JSON: address dict
    shipping_address = Text(required=True)  # JSON: address dict


@commerce.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        cart_lines = [CartLine(str(line["product_id"]), line["quantity"]) for line in json.loads(command.lines)]
        snapshot = build_snapshot(cart_lines)

        order = Order.place(
            order_number=allocate_order_number(),
            customer_ref=command.customer_ref,
            snapshot=snapshot,
            billing_address=json.loads(command.billing_address),
            shipping_address=json.loads(command.shipping_address),
        )
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            grand_total=order.pricing.grand_total,
        )
        return str(order.id)
