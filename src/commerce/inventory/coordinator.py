"""Reservation/decrement coordinator.

The only writer of ``sale`` movements. Called from payment reconciliation
once a payment has succeeded, and from the cancellation handler to hand
stock back.

Decrement protocol per order:
1. Claim the order's reservation row (already committed means nothing to do).
   A claim left in progress past the reservation timeout is taken over, and
   any sales its dead worker wrote are reversed first.
2. Conditionally decrement each line at the storage layer.
3. If a line is refused, or anything else fails, reverse the lines already
   taken with ``adjustment`` movements, mark the reservation failed and
   re-raise (InsufficientStockError for a refused line).
4. Otherwise mark the reservation committed.
"""

from collections import OrderedDict
from datetime import timedelta

import structlog

from commerce.config import get_settings
from commerce.errors import InsufficientStockError, UnknownProductError
from commerce.inventory import get_stock_store
from commerce.inventory.store.port import MovementType, ReservationStatus, StockMovement, StockStore

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"


def _merge(lines) -> list[tuple[str, int]]:
    merged: OrderedDict[str, int] = OrderedDict()
    for product_id, quantity in lines:
        merged[str(product_id)] = merged.get(str(product_id), 0) + int(quantity)
    return list(merged.items())


def _compensate(store: StockStore, order_id: str, taken: list[StockMovement]) -> None:
    for movement in reversed(taken):
        store.apply_movement(
            movement.product_id,
            -movement.delta,
            MovementType.ADJUSTMENT,
            actor_id=SYSTEM_ACTOR,
            order_id=order_id,
            reference=movement.movement_id,
            note="Reversal of partial decrement",
            enforce_floor=False,
        )


def _leftover_sales(store: StockStore, order_id: str) -> list[tuple[str, int]]:
    """Net sale quantities a dead worker wrote for ``order_id`` without reversing."""
    net: OrderedDict[str, int] = OrderedDict()
    for movement in store.movements(order_id=order_id):
        if movement.movement_type in (MovementType.SALE, MovementType.ADJUSTMENT):
            net[movement.product_id] = net.get(movement.product_id, 0) + movement.delta
    return [(product_id, delta) for product_id, delta in net.items() if delta]


def _settle_leftovers(store: StockStore, order_id: str) -> None:
    for product_id, delta in _leftover_sales(store, order_id):
        store.apply_movement(
            product_id,
            -delta,
            MovementType.ADJUSTMENT,
            actor_id=SYSTEM_ACTOR,
            order_id=order_id,
            note="Reversal of abandoned decrement",
            enforce_floor=False,
        )
        logger.warning("Reversed abandoned decrement", order_id=order_id, product_id=product_id, delta=-delta)


def _decrement(store: StockStore, order_id: str, product_id: str, quantity: int) -> StockMovement:
    try:
        movement = store.apply_movement(
            product_id,
            -quantity,
            MovementType.SALE,
            actor_id=SYSTEM_ACTOR,
            order_id=order_id,
            enforce_floor=True,
        )
    except UnknownProductError as exc:
        raise InsufficientStockError(order_id, product_id, quantity, 0) from exc
    if movement is None:
        available = store.get_product(product_id).stock_quantity
        raise InsufficientStockError(order_id, product_id, quantity, available)
    return movement


def commit_order_stock(order_id: str, lines, store: StockStore | None = None) -> list[StockMovement]:
    """Decrement stock for every line of a paid order, exactly once.

    Returns the sale movements written by this call; an empty list when the
    order's stock was already committed by an earlier call. Whatever goes
    wrong midway, the lines already taken are reversed and the claim is
    marked failed before the error propagates, so a retry can reclaim it.
    """
    store = store or get_stock_store()
    lines = _merge(lines)
    stale_after = timedelta(seconds=get_settings().reservation_timeout_seconds)

    if not store.claim_reservation(order_id, lines, stale_after=stale_after):
        logger.info("Stock already committed for order", order_id=order_id)
        return []
    _settle_leftovers(store, order_id)

    taken: list[StockMovement] = []
    try:
        for product_id, quantity in lines:
            taken.append(_decrement(store, order_id, product_id, quantity))
    except InsufficientStockError as exc:
        _compensate(store, order_id, taken)
        store.finish_reservation(order_id, ReservationStatus.FAILED)
        logger.warning(
            "Insufficient stock for paid order",
            order_id=order_id,
            product_id=exc.product_id,
            requested=exc.requested,
            available=exc.available,
        )
        raise
    except Exception as exc:
        logger.error("Stock decrement aborted", order_id=order_id, taken=len(taken), error=str(exc))
        _compensate(store, order_id, taken)
        store.finish_reservation(order_id, ReservationStatus.FAILED)
        raise

    store.finish_reservation(order_id, ReservationStatus.COMMITTED)
    logger.info("Stock committed for order", order_id=order_id, lines=len(taken))
    return taken


def release_order_stock(order_id: str, actor_id: str = SYSTEM_ACTOR, store: StockStore | None = None) -> list[StockMovement]:
    """Return committed stock for a cancelled order. Idempotent."""
    store = store or get_stock_store()
    reservation = store.release_reservation(order_id)
    if reservation is None:
        logger.debug("No committed stock to release", order_id=order_id)
        return []

    returned = [
        store.apply_movement(
            product_id,
            quantity,
            MovementType.RETURN,
            actor_id=actor_id,
            order_id=order_id,
            note="Order cancelled",
            enforce_floor=False,
        )
        for product_id, quantity in reservation.lines
    ]
    logger.info("Stock returned for cancelled order", order_id=order_id, lines=len(returned))
    return returned
