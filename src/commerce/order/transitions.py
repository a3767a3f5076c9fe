"""Order status transitions — commands and handler.

One command covers every actor; the aggregate's transition table decides
whether the actor may make the move.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.order.order import Order
from commerce.utils.retry import retry_on_conflict


@commerce.command(part_of="Order")
class ChangeOrderStatus:
    order_id = Identifier(required=True)
    to_status = String(required=True, max_length=20)
    actor_role = String(required=True, max_length=20)
    actor_id = String(max_length=255)
    comment = String(max_length=500)


@commerce.command(part_of="Order")
class FlagOrderForAttention:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@commerce.command(part_of="Order")
class RecordOrderPaymentStatus:
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    payment_status = String(required=True, max_length=20)


@commerce.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(ChangeOrderStatus)
    def change_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.transition_to(
            command.to_status,
            command.actor_role,
            actor_id=command.actor_id,
            comment=command.comment,
        )
        repo.add(order)
        return order.status

    @handle(FlagOrderForAttention)
    def flag_for_attention(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.flag_for_attention(command.reason)
        repo.add(order)

    @handle(RecordOrderPaymentStatus)
    def record_payment_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.record_payment_status(command.attempt_id, command.payment_status):
            repo.add(order)


def change_order_status(order_id, to_status, actor_role, actor_id=None, comment=None) -> str:
    """Request a transition, retrying if another writer got to the order first.

    A retry re-reads the order, so a request made stale by the concurrent
    change fails with IllegalTransitionError instead of overwriting it.
    """

    def _attempt():
        command = ChangeOrderStatus(
            order_id=order_id,
            to_status=to_status,
            actor_role=actor_role,
            actor_id=actor_id,
            comment=comment,
        )
        return current_domain.process(command, asynchronous=False)

    return retry_on_conflict(_attempt)
