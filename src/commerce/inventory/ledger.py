"""Stock ledger — catalog maintenance, manual movements and audits.

Sales are never written here: the reservation coordinator is the only
writer of ``sale`` movements. Everything else (restocks, returns, write-offs,
corrections) comes through ``adjust_stock`` with an actor attached.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import structlog
from protean.exceptions import ValidationError

from commerce.config import get_settings
from commerce.inventory import get_stock_store
from commerce.inventory.store.port import MovementType, ProductRecord, StockMovement

logger = structlog.get_logger(__name__)

_INFLOWS = {MovementType.RESTOCK, MovementType.RETURN}
_OUTFLOWS = {MovementType.DAMAGED, MovementType.LOST}
MANUAL_TYPES = _INFLOWS | _OUTFLOWS | {MovementType.ADJUSTMENT}


def _price(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LedgerDiscrepancy:
    product_id: str
    stock_quantity: int
    ledger_quantity: int


def register_product(
    product_id: str,
    sku: str,
    title: str,
    unit_price,
    currency: str | None = None,
    initial_stock: int = 0,
    low_stock_threshold: int = 5,
    track_inventory: bool = True,
    allow_backorder: bool = False,
    actor_id: str = "system",
) -> ProductRecord:
    """Add a product row and book its opening stock as a restock movement."""
    if initial_stock < 0:
        raise ValidationError({"initial_stock": ["Initial stock cannot be negative"]})

    store = get_stock_store()
    store.add_product(
        ProductRecord(
            product_id=product_id,
            sku=sku,
            title=title,
            unit_price=_price(unit_price),
            currency=(currency or get_settings().currency).upper(),
            track_inventory=track_inventory,
            low_stock_threshold=low_stock_threshold,
            allow_backorder=allow_backorder,
        )
    )
    if initial_stock:
        store.apply_movement(
            product_id,
            initial_stock,
            MovementType.RESTOCK,
            actor_id=actor_id,
            note="Opening stock",
            enforce_floor=False,
        )

    logger.info("Product registered", product_id=product_id, sku=sku, initial_stock=initial_stock)
    return store.get_product(product_id)


def update_product(product_id: str, **changes) -> ProductRecord:
    if "unit_price" in changes and changes["unit_price"] is not None:
        changes["unit_price"] = _price(changes["unit_price"])
    changes = {k: v for k, v in changes.items() if v is not None}
    product = get_stock_store().update_product(product_id, **changes)
    logger.info("Product updated", product_id=product_id, fields=sorted(changes))
    return product


def deactivate_product(product_id: str) -> ProductRecord:
    return update_product(product_id, is_active=False)


def reactivate_product(product_id: str) -> ProductRecord:
    return update_product(product_id, is_active=True)


def _signed_delta(movement_type: MovementType, quantity: int) -> int:
    if movement_type in _INFLOWS:
        return abs(quantity)
    if movement_type in _OUTFLOWS:
        return -abs(quantity)
    return quantity


def adjust_stock(
    product_id: str,
    quantity: int,
    movement_type,
    actor_id: str,
    reference: str | None = None,
    note: str | None = None,
) -> StockMovement:
    """Record a manual stock movement.

    ``quantity`` may be a bare magnitude for typed movements (restock,
    return, damaged, lost); the sign is taken from the type. Adjustments keep
    the caller's sign. Stock of tracked, non-backorder products never drops
    below zero.
    """
    movement_type = MovementType(movement_type)
    if movement_type not in MANUAL_TYPES:
        raise ValidationError({"type": [f"{movement_type.value} movements cannot be recorded manually"]})
    if not quantity:
        raise ValidationError({"quantity": ["Quantity must not be zero"]})
    if not actor_id:
        raise ValidationError({"actor_id": ["An actor is required for manual movements"]})

    store = get_stock_store()
    delta = _signed_delta(movement_type, quantity)
    movement = store.apply_movement(
        product_id,
        delta,
        movement_type,
        actor_id=actor_id,
        reference=reference,
        note=note,
        enforce_floor=True,
    )
    if movement is None:
        available = store.get_product(product_id).stock_quantity
        raise ValidationError(
            {"quantity": [f"Adjustment of {delta} would take stock below zero: {available} available"]}
        )

    logger.info(
        "Stock adjusted",
        product_id=product_id,
        delta=delta,
        movement_type=movement_type.value,
        actor_id=actor_id,
    )
    return movement


def current_stock(product_id: str) -> ProductRecord:
    return get_stock_store().get_product(product_id)


def movement_history(product_id: str) -> list[StockMovement]:
    store = get_stock_store()
    store.get_product(product_id)
    return store.movements(product_id=product_id)


def recent_movements(limit: int = 20) -> list[StockMovement]:
    """Latest movements across the catalog, newest first."""
    return get_stock_store().recent_movements(limit)


def low_stock() -> list[ProductRecord]:
    return get_stock_store().low_stock()


def out_of_stock() -> list[ProductRecord]:
    return get_stock_store().out_of_stock()


def audit() -> list[LedgerDiscrepancy]:
    """Compare every counter with the sum of its movements."""
    store = get_stock_store()
    discrepancies = []
    for product in store.list_products():
        ledger = store.ledger_quantity(product.product_id)
        if ledger != product.stock_quantity:
            discrepancies.append(LedgerDiscrepancy(product.product_id, product.stock_quantity, ledger))

    if discrepancies:
        logger.error("Ledger discrepancies found", count=len(discrepancies))
    return discrepancies
