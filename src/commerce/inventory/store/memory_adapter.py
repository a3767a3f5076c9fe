"""In-process stock store with per-row locking.

Each product row and each reservation row gets its own lock, so concurrent
decrements of different products never wait on each other. A short-lived
registry lock only guards lock creation and row insertion.
"""

import threading
from collections import defaultdict
from dataclasses import replace
from datetime import UTC, datetime
from uuid import uuid4

from protean.exceptions import ValidationError

from commerce.errors import StorageConflictError, UnknownProductError
from commerce.inventory.store.port import (
    UPDATABLE_FIELDS,
    MovementType,
    ProductRecord,
    ReservationStatus,
    StockMovement,
    StockReservation,
    StockStore,
)


class MemoryStockStore(StockStore):
    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._row_locks: dict[str, threading.Lock] = {}
        self._products: dict[str, ProductRecord] = {}
        self._movements: dict[str, list[tuple[int, StockMovement]]] = defaultdict(list)
        self._reservations: dict[str, StockReservation] = {}
        self._sequence = 0

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._row_locks.get(key)
            if lock is None:
                lock = self._row_locks[key] = threading.Lock()
            return lock

    def _require(self, product_id: str) -> ProductRecord:
        product = self._products.get(product_id)
        if product is None:
            raise UnknownProductError(product_id)
        return product

    # -------------------------------------------------------------------
    # Catalog rows
    # -------------------------------------------------------------------
    def add_product(self, product: ProductRecord) -> ProductRecord:
        with self._registry_lock:
            if product.product_id in self._products:
                raise ValidationError({"product_id": [f"Product {product.product_id} already exists"]})
            self._products[product.product_id] = replace(product, stock_quantity=0)
            return self._products[product.product_id]

    def get_product(self, product_id: str) -> ProductRecord:
        return self._require(product_id)

    def update_product(self, product_id: str, **changes) -> ProductRecord:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError({"fields": [f"Cannot update {', '.join(sorted(unknown))}"]})
        with self._lock_for(f"product:{product_id}"):
            product = replace(self._require(product_id), **changes)
            self._products[product_id] = product
            return product

    def list_products(self) -> list[ProductRecord]:
        return sorted(self._products.values(), key=lambda p: p.product_id)

    # -------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------
    def apply_movement(
        self,
        product_id,
        delta,
        movement_type,
        actor_id,
        order_id=None,
        reference=None,
        note=None,
        enforce_floor=True,
    ):
        with self._lock_for(f"product:{product_id}"):
            product = self._require(product_id)
            new_quantity = product.stock_quantity + delta
            guarded = product.track_inventory and not product.allow_backorder
            if enforce_floor and delta < 0 and guarded and new_quantity < 0:
                return None

            movement = StockMovement(
                movement_id=str(uuid4()),
                product_id=product_id,
                delta=delta,
                movement_type=MovementType(movement_type),
                actor_id=actor_id,
                created_at=datetime.now(UTC),
                order_id=order_id,
                reference=reference,
                note=note,
            )
            self._products[product_id] = replace(product, stock_quantity=new_quantity)
            with self._registry_lock:
                self._sequence += 1
                self._movements[product_id].append((self._sequence, movement))
            return movement

    def ledger_quantity(self, product_id: str) -> int:
        with self._lock_for(f"product:{product_id}"):
            self._require(product_id)
            return sum(m.delta for _, m in self._movements.get(product_id, []))

    def movements(self, product_id=None, order_id=None):
        if product_id is not None:
            entries = list(self._movements.get(product_id, []))
        else:
            entries = [entry for rows in list(self._movements.values()) for entry in rows]
        entries.sort(key=lambda entry: entry[0])
        return [m for _, m in entries if order_id is None or m.order_id == order_id]

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def claim_reservation(self, order_id, lines, stale_after=None):
        with self._lock_for(f"reservation:{order_id}"):
            existing = self._reservations.get(order_id)
            now = datetime.now(UTC)
            if existing is not None:
                if existing.status == ReservationStatus.IN_PROGRESS:
                    if stale_after is None or now - existing.updated_at < stale_after:
                        raise StorageConflictError("reservation", order_id, "stock decrement already in progress")
                if existing.status in (ReservationStatus.COMMITTED, ReservationStatus.RELEASED):
                    return False

            self._reservations[order_id] = StockReservation(
                order_id=order_id,
                status=ReservationStatus.IN_PROGRESS,
                lines=tuple((str(product_id), int(quantity)) for product_id, quantity in lines),
                updated_at=now,
            )
            return True

    def finish_reservation(self, order_id, status):
        with self._lock_for(f"reservation:{order_id}"):
            existing = self._reservations.get(order_id)
            if existing is None or existing.status != ReservationStatus.IN_PROGRESS:
                raise StorageConflictError("reservation", order_id, "no claim in progress")
            self._reservations[order_id] = replace(existing, status=status, updated_at=datetime.now(UTC))

    def release_reservation(self, order_id):
        with self._lock_for(f"reservation:{order_id}"):
            existing = self._reservations.get(order_id)
            if existing is None or existing.status != ReservationStatus.COMMITTED:
                return None
            released = replace(existing, status=ReservationStatus.RELEASED, updated_at=datetime.now(UTC))
            self._reservations[order_id] = released
            return released

    def get_reservation(self, order_id):
        return self._reservations.get(order_id)

    def reset(self) -> None:
        with self._registry_lock:
            self._row_locks.clear()
            self._products.clear()
            self._movements.clear()
            self._reservations.clear()
            self._sequence = 0
