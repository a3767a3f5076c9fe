"""Stock store port.

The store owns the catalog/stock rows, the append-only movement log and the
per-order reservation records. Every stock change goes through
``apply_movement``, which updates the counter and appends the movement in one
atomic step, so ``sum(deltas) == stock_quantity`` holds for every product.

Adapters:
- MemoryStockStore: per-row locks, for tests and single-process deployments
- SqlStockStore: conditional UPDATE inside a transaction (SQLAlchemy Core)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum


class MovementType(Enum):
    SALE = "sale"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DAMAGED = "damaged"
    LOST = "lost"


class ReservationStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMMITTED = "committed"
    FAILED = "failed"
    RELEASED = "released"


@dataclass(frozen=True)
class ProductRecord:
    product_id: str
    sku: str
    title: str
    unit_price: Decimal
    currency: str
    is_active: bool = True
    track_inventory: bool = True
    stock_quantity: int = 0
    low_stock_threshold: int = 5
    allow_backorder: bool = False

    @property
    def is_low_stock(self) -> bool:
        return self.track_inventory and 0 < self.stock_quantity <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return self.track_inventory and self.stock_quantity <= 0


@dataclass(frozen=True)
class StockMovement:
    movement_id: str
    product_id: str
    delta: int
    movement_type: MovementType
    actor_id: str
    created_at: datetime
    order_id: str | None = None
    reference: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class StockReservation:
    order_id: str
    status: ReservationStatus
    lines: tuple[tuple[str, int], ...]
    updated_at: datetime


# Fields a catalog update may touch. Stock only moves through movements.
UPDATABLE_FIELDS = frozenset({"sku", "title", "unit_price", "is_active", "low_stock_threshold", "allow_backorder"})


class StockStore(ABC):
    """Abstract stock store interface."""

    # -------------------------------------------------------------------
    # Catalog rows
    # -------------------------------------------------------------------
    @abstractmethod
    def add_product(self, product: ProductRecord) -> ProductRecord:
        """Insert a new product row. Raises ValidationError if the id is taken."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductRecord:
        """Return the product row. Raises UnknownProductError."""

    @abstractmethod
    def update_product(self, product_id: str, **changes) -> ProductRecord:
        """Change catalog fields listed in UPDATABLE_FIELDS."""

    @abstractmethod
    def list_products(self) -> list[ProductRecord]: ...

    # -------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------
    @abstractmethod
    def apply_movement(
        self,
        product_id: str,
        delta: int,
        movement_type: MovementType,
        actor_id: str,
        order_id: str | None = None,
        reference: str | None = None,
        note: str | None = None,
        enforce_floor: bool = True,
    ) -> StockMovement | None:
        """Atomically move stock and append the movement.

        With ``enforce_floor`` a negative delta is refused (``None`` is
        returned and nothing is written) when a tracked, non-backorder product
        would drop below zero. Raises UnknownProductError.
        """

    @abstractmethod
    def ledger_quantity(self, product_id: str) -> int:
        """Sum of all movement deltas for the product."""

    @abstractmethod
    def movements(self, product_id: str | None = None, order_id: str | None = None) -> list[StockMovement]:
        """Movements in the order they were written, optionally filtered."""

    def recent_movements(self, limit: int = 20) -> list[StockMovement]:
        """The latest movements across all products, newest first."""
        return list(reversed(self.movements()))[:limit]

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    @abstractmethod
    def claim_reservation(
        self,
        order_id: str,
        lines: list[tuple[str, int]],
        stale_after: timedelta | None = None,
    ) -> bool:
        """Claim the right to decrement stock for an order.

        Returns True when the caller now holds the claim (new, reclaimed after
        a failure, or taken over from an in-progress claim untouched for longer
        than ``stale_after``), False when the order's stock is already
        committed or released. Raises StorageConflictError while another
        worker holds a live claim.
        """

    @abstractmethod
    def finish_reservation(self, order_id: str, status: ReservationStatus) -> None:
        """Move an in-progress claim to committed or failed."""

    @abstractmethod
    def release_reservation(self, order_id: str) -> StockReservation | None:
        """Flip committed to released and return the reservation, else None."""

    @abstractmethod
    def get_reservation(self, order_id: str) -> StockReservation | None: ...

    # -------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------
    def low_stock(self) -> list[ProductRecord]:
        return [p for p in self.list_products() if p.is_low_stock]

    def out_of_stock(self) -> list[ProductRecord]:
        return [p for p in self.list_products() if p.is_out_of_stock]

    def reset(self) -> None:
        """Remove all rows. Used by tests and the drop-db command."""
