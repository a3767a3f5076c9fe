"""Integration tests for the SQLAlchemy stock store on a SQLite file."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from commerce.errors import InsufficientStockError, StorageConflictError, UnknownProductError
from commerce.inventory import build_stock_store, set_stock_store
from commerce.inventory.coordinator import commit_order_stock, release_order_stock
from commerce.inventory.ledger import adjust_stock, audit, register_product
from commerce.inventory.store.port import MovementType, ProductRecord, ReservationStatus
from commerce.inventory.store.sql_adapter import SqlStockStore, stock_reservations
from protean.exceptions import ValidationError
from sqlalchemy import update


@pytest.fixture()
def sql_store(tmp_path):
    store = build_stock_store(f"sqlite:///{tmp_path / 'stock.db'}")
    set_stock_store(store)
    yield store
    store.drop_tables()


def _product(product_id="prod-001", **overrides):
    values = dict(product_id=product_id, sku="SKU-1", title="Mug", unit_price=Decimal("10.00"), currency="EUR")
    values.update(overrides)
    return ProductRecord(**values)


class TestCatalog:
    def test_factory_builds_sql_store_for_urls(self, sql_store):
        assert isinstance(sql_store, SqlStockStore)

    def test_add_and_get_product(self, sql_store):
        sql_store.add_product(_product(low_stock_threshold=3))

        product = sql_store.get_product("prod-001")
        assert product.unit_price == Decimal("10.00")
        assert product.stock_quantity == 0
        assert product.low_stock_threshold == 3

    def test_duplicate_product_rejected(self, sql_store):
        sql_store.add_product(_product())
        with pytest.raises(ValidationError):
            sql_store.add_product(_product())

    def test_update_unknown_product(self, sql_store):
        with pytest.raises(UnknownProductError):
            sql_store.update_product("ghost", title="x")


class TestLedger:
    def test_floor_is_enforced_in_the_update(self, sql_store):
        sql_store.add_product(_product())
        sql_store.apply_movement("prod-001", 2, MovementType.RESTOCK, actor_id="admin-1")

        assert sql_store.apply_movement("prod-001", -3, MovementType.SALE, actor_id="system") is None
        assert sql_store.get_product("prod-001").stock_quantity == 2
        assert sql_store.ledger_quantity("prod-001") == 2

    def test_backorder_bypasses_the_floor(self, sql_store):
        sql_store.add_product(_product(allow_backorder=True))
        assert sql_store.apply_movement("prod-001", -1, MovementType.SALE, actor_id="system") is not None
        assert sql_store.get_product("prod-001").stock_quantity == -1

    def test_unknown_product(self, sql_store):
        with pytest.raises(UnknownProductError):
            sql_store.apply_movement("ghost", -1, MovementType.SALE, actor_id="system")

    def test_manual_movements_keep_the_ledger_consistent(self, sql_store):
        register_product("prod-001", sku="MUG-1", title="Mug", unit_price=9.5, initial_stock=10)
        adjust_stock("prod-001", 3, "damaged", actor_id="admin-7")
        adjust_stock("prod-001", 5, "restock", actor_id="admin-7")

        assert sql_store.get_product("prod-001").stock_quantity == 12
        assert [m.delta for m in sql_store.movements(product_id="prod-001")] == [10, -3, 5]
        assert audit() == []


class TestReservations:
    def test_claim_lifecycle(self, sql_store):
        assert sql_store.claim_reservation("ord-1", [("prod-001", 1)]) is True
        with pytest.raises(StorageConflictError):
            sql_store.claim_reservation("ord-1", [("prod-001", 1)])

        sql_store.finish_reservation("ord-1", ReservationStatus.COMMITTED)
        assert sql_store.claim_reservation("ord-1", [("prod-001", 1)]) is False

        released = sql_store.release_reservation("ord-1")
        assert released.status == ReservationStatus.RELEASED
        assert released.lines == (("prod-001", 1),)
        assert sql_store.release_reservation("ord-1") is None

    def test_failed_claim_is_reclaimed(self, sql_store):
        sql_store.claim_reservation("ord-1", [("prod-001", 1)])
        sql_store.finish_reservation("ord-1", ReservationStatus.FAILED)
        assert sql_store.claim_reservation("ord-1", [("prod-001", 2)]) is True
        assert sql_store.get_reservation("ord-1").lines == (("prod-001", 2),)

    def test_fresh_claim_in_progress_is_not_taken_over(self, sql_store):
        sql_store.claim_reservation("ord-1", [("prod-001", 1)])

        with pytest.raises(StorageConflictError):
            sql_store.claim_reservation("ord-1", [("prod-001", 1)], stale_after=timedelta(seconds=30))

    def test_stale_claim_in_progress_is_taken_over(self, sql_store):
        sql_store.claim_reservation("ord-1", [("prod-001", 1)])
        with sql_store.engine.begin() as conn:
            conn.execute(
                update(stock_reservations)
                .where(stock_reservations.c.order_id == "ord-1")
                .values(updated_at=datetime.now(UTC) - timedelta(minutes=5))
            )

        assert sql_store.claim_reservation("ord-1", [("prod-001", 1)], stale_after=timedelta(seconds=30)) is True
        assert sql_store.get_reservation("ord-1").status == ReservationStatus.IN_PROGRESS


class TestCoordinatorOnSql:
    def test_commit_and_release(self, sql_store):
        register_product("prod-001", sku="MUG-1", title="Mug", unit_price=9.5, initial_stock=5)

        commit_order_stock("ord-1", [("prod-001", 2)])
        commit_order_stock("ord-1", [("prod-001", 2)])
        assert sql_store.get_product("prod-001").stock_quantity == 3

        release_order_stock("ord-1")
        assert sql_store.get_product("prod-001").stock_quantity == 5
        assert audit() == []

    def test_shortage_is_compensated(self, sql_store):
        register_product("prod-001", sku="MUG-1", title="Mug", unit_price=9.5, initial_stock=5)
        register_product("prod-002", sku="CUP-1", title="Cup", unit_price=4.0, initial_stock=0)

        with pytest.raises(InsufficientStockError):
            commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert sql_store.get_product("prod-001").stock_quantity == 5
        assert sql_store.get_reservation("ord-1").status == ReservationStatus.FAILED
        assert audit() == []

    def test_abandoned_decrement_is_reversed_on_takeover(self, sql_store):
        register_product("prod-001", sku="MUG-1", title="Mug", unit_price=9.5, initial_stock=5)
        sql_store.claim_reservation("ord-1", [("prod-001", 2)])
        sql_store.apply_movement("prod-001", -2, MovementType.SALE, actor_id="system", order_id="ord-1")
        with sql_store.engine.begin() as conn:
            conn.execute(update(stock_reservations).values(updated_at=datetime.now(UTC) - timedelta(minutes=5)))

        commit_order_stock("ord-1", [("prod-001", 2)])

        assert sql_store.get_product("prod-001").stock_quantity == 3
        assert sql_store.get_reservation("ord-1").status == ReservationStatus.COMMITTED
        assert [m.movement_type for m in sql_store.movements(order_id="ord-1")] == [
            MovementType.SALE,
            MovementType.ADJUSTMENT,
            MovementType.SALE,
        ]
        assert audit() == []

    def test_recent_movements_newest_first(self, sql_store):
        register_product("prod-001", sku="MUG-1", title="Mug", unit_price=9.5, initial_stock=5)
        register_product("prod-002", sku="CUP-1", title="Cup", unit_price=4.0, initial_stock=3)
        sql_store.apply_movement("prod-001", -1, MovementType.DAMAGED, actor_id="admin-7")

        recent = sql_store.recent_movements(limit=2)

        assert [(m.product_id, m.delta) for m in recent] == [("prod-001", -1), ("prod-002", 3)]
