"""SQL stock store built on SQLAlchemy Core.

Stock decrements are a single conditional UPDATE; the movement INSERT runs
in the same transaction, so the counter and the ledger can never diverge.
A zero rowcount on the UPDATE means the floor check refused the movement.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from protean.exceptions import ValidationError
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    and_,
    create_engine,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

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

metadata = MetaData()

products = Table(
    "products",
    metadata,
    Column("product_id", String(64), primary_key=True),
    Column("sku", String(64), nullable=False),
    Column("title", String(255), nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("track_inventory", Boolean, nullable=False, default=True),
    Column("stock_quantity", Integer, nullable=False, default=0),
    Column("low_stock_threshold", Integer, nullable=False, default=5),
    Column("allow_backorder", Boolean, nullable=False, default=False),
)

stock_movements = Table(
    "stock_movements",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("movement_id", String(36), nullable=False, unique=True),
    Column("product_id", String(64), nullable=False, index=True),
    Column("delta", Integer, nullable=False),
    Column("movement_type", String(20), nullable=False),
    Column("order_id", String(64), index=True),
    Column("reference", String(255)),
    Column("note", Text),
    Column("actor_id", String(255), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

stock_reservations = Table(
    "stock_reservations",
    metadata,
    Column("order_id", String(64), primary_key=True),
    Column("status", String(20), nullable=False),
    Column("lines", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def _product_from_row(row) -> ProductRecord:
    return ProductRecord(
        product_id=row.product_id,
        sku=row.sku,
        title=row.title,
        unit_price=Decimal(row.unit_price).quantize(Decimal("0.01")),
        currency=row.currency,
        is_active=bool(row.is_active),
        track_inventory=bool(row.track_inventory),
        stock_quantity=row.stock_quantity,
        low_stock_threshold=row.low_stock_threshold,
        allow_backorder=bool(row.allow_backorder),
    )


def _movement_from_row(row) -> StockMovement:
    return StockMovement(
        movement_id=row.movement_id,
        product_id=row.product_id,
        delta=row.delta,
        movement_type=MovementType(row.movement_type),
        actor_id=row.actor_id,
        created_at=row.created_at,
        order_id=row.order_id,
        reference=row.reference,
        note=row.note,
    )


def _reservation_from_row(row) -> StockReservation:
    return StockReservation(
        order_id=row.order_id,
        status=ReservationStatus(row.status),
        lines=tuple((product_id, quantity) for product_id, quantity in json.loads(row.lines)),
        updated_at=row.updated_at,
    )


class SqlStockStore(StockStore):
    def __init__(self, url: str, **engine_options) -> None:
        self.url = url
        self.engine = create_engine(url, **engine_options)

    def create_tables(self) -> None:
        metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        metadata.drop_all(self.engine)

    # -------------------------------------------------------------------
    # Catalog rows
    # -------------------------------------------------------------------
    def add_product(self, product: ProductRecord) -> ProductRecord:
        values = {
            "product_id": product.product_id,
            "sku": product.sku,
            "title": product.title,
            "unit_price": product.unit_price,
            "currency": product.currency,
            "is_active": product.is_active,
            "track_inventory": product.track_inventory,
            "stock_quantity": 0,
            "low_stock_threshold": product.low_stock_threshold,
            "allow_backorder": product.allow_backorder,
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(products).values(**values))
        except IntegrityError as exc:
            raise ValidationError({"product_id": [f"Product {product.product_id} already exists"]}) from exc
        return self.get_product(product.product_id)

    def get_product(self, product_id: str) -> ProductRecord:
        with self.engine.connect() as conn:
            row = conn.execute(select(products).where(products.c.product_id == product_id)).first()
        if row is None:
            raise UnknownProductError(product_id)
        return _product_from_row(row)

    def update_product(self, product_id: str, **changes) -> ProductRecord:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError({"fields": [f"Cannot update {', '.join(sorted(unknown))}"]})
        if changes:
            with self.engine.begin() as conn:
                result = conn.execute(update(products).where(products.c.product_id == product_id).values(**changes))
                if result.rowcount == 0:
                    raise UnknownProductError(product_id)
        return self.get_product(product_id)

    def list_products(self) -> list[ProductRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(products).order_by(products.c.product_id)).all()
        return [_product_from_row(row) for row in rows]

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
        stmt = update(products).where(products.c.product_id == product_id)
        if enforce_floor and delta < 0:
            stmt = stmt.where(
                or_(
                    products.c.stock_quantity + delta >= 0,
                    products.c.allow_backorder.is_(True),
                    products.c.track_inventory.is_(False),
                )
            )
        stmt = stmt.values(stock_quantity=products.c.stock_quantity + delta)

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

        with self.engine.begin() as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                exists = conn.execute(select(products.c.product_id).where(products.c.product_id == product_id)).first()
                if exists is None:
                    raise UnknownProductError(product_id)
                return None

            conn.execute(
                insert(stock_movements).values(
                    movement_id=movement.movement_id,
                    product_id=product_id,
                    delta=delta,
                    movement_type=movement.movement_type.value,
                    order_id=order_id,
                    reference=reference,
                    note=note,
                    actor_id=actor_id,
                    created_at=movement.created_at,
                )
            )
        return movement

    def ledger_quantity(self, product_id: str) -> int:
        self.get_product(product_id)
        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.coalesce(func.sum(stock_movements.c.delta), 0)).where(
                    stock_movements.c.product_id == product_id
                )
            ).scalar_one()
        return int(total)

    def movements(self, product_id=None, order_id=None):
        query = select(stock_movements).order_by(stock_movements.c.seq)
        if product_id is not None:
            query = query.where(stock_movements.c.product_id == product_id)
        if order_id is not None:
            query = query.where(stock_movements.c.order_id == order_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).all()
        return [_movement_from_row(row) for row in rows]

    def recent_movements(self, limit: int = 20) -> list[StockMovement]:
        query = select(stock_movements).order_by(stock_movements.c.seq.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).all()
        return [_movement_from_row(row) for row in rows]

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def _insert_claim(self, order_id, payload, now) -> bool:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(stock_reservations).values(
                        order_id=order_id,
                        status=ReservationStatus.IN_PROGRESS.value,
                        lines=payload,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            return False
        return True

    def claim_reservation(self, order_id, lines, stale_after=None):
        payload = json.dumps([[str(product_id), int(quantity)] for product_id, quantity in lines])
        now = datetime.now(UTC)
        if self._insert_claim(order_id, payload, now):
            return True

        reclaimable = stock_reservations.c.status == ReservationStatus.FAILED.value
        if stale_after is not None:
            reclaimable = or_(
                reclaimable,
                and_(
                    stock_reservations.c.status == ReservationStatus.IN_PROGRESS.value,
                    stock_reservations.c.updated_at < now - stale_after,
                ),
            )

        with self.engine.begin() as conn:
            result = conn.execute(
                update(stock_reservations)
                .where(stock_reservations.c.order_id == order_id, reclaimable)
                .values(status=ReservationStatus.IN_PROGRESS.value, lines=payload, updated_at=now)
            )
            if result.rowcount == 1:
                return True
            status = conn.execute(
                select(stock_reservations.c.status).where(stock_reservations.c.order_id == order_id)
            ).scalar_one()

        if status in (ReservationStatus.COMMITTED.value, ReservationStatus.RELEASED.value):
            return False
        raise StorageConflictError("reservation", order_id, "stock decrement already in progress")

    def finish_reservation(self, order_id, status):
        with self.engine.begin() as conn:
            result = conn.execute(
                update(stock_reservations)
                .where(
                    stock_reservations.c.order_id == order_id,
                    stock_reservations.c.status == ReservationStatus.IN_PROGRESS.value,
                )
                .values(status=ReservationStatus(status).value, updated_at=datetime.now(UTC))
            )
        if result.rowcount == 0:
            raise StorageConflictError("reservation", order_id, "no claim in progress")

    def release_reservation(self, order_id):
        with self.engine.begin() as conn:
            result = conn.execute(
                update(stock_reservations)
                .where(
                    stock_reservations.c.order_id == order_id,
                    stock_reservations.c.status == ReservationStatus.COMMITTED.value,
                )
                .values(status=ReservationStatus.RELEASED.value, updated_at=datetime.now(UTC))
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(select(stock_reservations).where(stock_reservations.c.order_id == order_id)).one()
        return _reservation_from_row(row)

    def get_reservation(self, order_id):
        with self.engine.connect() as conn:
            row = conn.execute(select(stock_reservations).where(stock_reservations.c.order_id == order_id)).first()
        return _reservation_from_row(row) if row is not None else None

    def reset(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(stock_reservations.delete())
            conn.execute(stock_movements.delete())
            conn.execute(products.delete())
