"""Application tests for the reservation/decrement coordinator."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest
from commerce.errors import InsufficientStockError, StorageConflictError
from commerce.inventory.coordinator import commit_order_stock, release_order_stock
from commerce.inventory.ledger import audit
from commerce.inventory.store.port import MovementType, ReservationStatus


class TestCommitOrderStock:
    def test_decrements_every_line(self, store, make_product):
        make_product("prod-001", stock=5)
        make_product("prod-002", stock=3)

        movements = commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert [m.movement_type for m in movements] == [MovementType.SALE, MovementType.SALE]
        assert store.get_product("prod-001").stock_quantity == 3
        assert store.get_product("prod-002").stock_quantity == 2
        assert store.get_reservation("ord-1").status == ReservationStatus.COMMITTED

    def test_second_call_does_not_decrement_again(self, store, make_product):
        make_product(stock=5)

        commit_order_stock("ord-1", [("prod-001", 2)])
        again = commit_order_stock("ord-1", [("prod-001", 2)])

        assert again == []
        assert store.get_product("prod-001").stock_quantity == 3
        assert len(store.movements(order_id="ord-1")) == 1

    def test_duplicate_lines_are_merged(self, store, make_product):
        make_product(stock=5)

        movements = commit_order_stock("ord-1", [("prod-001", 1), ("prod-001", 2)])

        assert [m.delta for m in movements] == [-3]

    def test_shortage_reverses_lines_already_taken(self, store, make_product):
        make_product("prod-001", stock=5)
        make_product("prod-002", stock=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 3)])

        assert exc_info.value.product_id == "prod-002"
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 1
        assert store.get_product("prod-001").stock_quantity == 5
        assert store.get_product("prod-002").stock_quantity == 1
        assert store.get_reservation("ord-1").status == ReservationStatus.FAILED

        reversal = store.movements(order_id="ord-1")[-1]
        assert reversal.movement_type == MovementType.ADJUSTMENT
        assert reversal.delta == 2
        assert audit() == []

    def test_failed_reservation_can_be_retried_after_restock(self, store, make_product):
        make_product(stock=1)
        with pytest.raises(InsufficientStockError):
            commit_order_stock("ord-1", [("prod-001", 2)])

        store.apply_movement("prod-001", 5, MovementType.RESTOCK, actor_id="admin-1")
        commit_order_stock("ord-1", [("prod-001", 2)])

        assert store.get_product("prod-001").stock_quantity == 4

    def test_unknown_product_counts_as_unavailable(self, store, make_product):
        make_product(stock=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            commit_order_stock("ord-1", [("prod-001", 1), ("deleted", 1)])

        assert exc_info.value.available == 0
        assert store.get_product("prod-001").stock_quantity == 5


class TestReleaseOrderStock:
    def test_returns_committed_stock(self, store, make_product):
        make_product(stock=5)
        commit_order_stock("ord-1", [("prod-001", 2)])

        returned = release_order_stock("ord-1", actor_id="admin-7")

        assert [(m.delta, m.movement_type, m.actor_id) for m in returned] == [(2, MovementType.RETURN, "admin-7")]
        assert store.get_product("prod-001").stock_quantity == 5

    def test_release_is_idempotent(self, store, make_product):
        make_product(stock=5)
        commit_order_stock("ord-1", [("prod-001", 2)])

        release_order_stock("ord-1")
        assert release_order_stock("ord-1") == []
        assert store.get_product("prod-001").stock_quantity == 5

    def test_nothing_to_release_without_commit(self, make_product):
        make_product(stock=5)
        assert release_order_stock("ord-unpaid") == []

    def test_released_order_is_never_decremented_again(self, store, make_product):
        make_product(stock=5)
        commit_order_stock("ord-1", [("prod-001", 2)])
        release_order_stock("ord-1")

        assert commit_order_stock("ord-1", [("prod-001", 2)]) == []
        assert store.get_product("prod-001").stock_quantity == 5


class TestAbortedDecrement:
    @pytest.fixture()
    def failing_second_sale(self, store, monkeypatch):
        real_apply = store.apply_movement
        sales = []

        def _apply(product_id, delta, movement_type, *args, **kwargs):
            if movement_type == MovementType.SALE:
                sales.append(product_id)
                if len(sales) == 2:
                    raise RuntimeError("connection reset")
            return real_apply(product_id, delta, movement_type, *args, **kwargs)

        monkeypatch.setattr(store, "apply_movement", _apply)
        return real_apply

    def test_unexpected_error_reverses_taken_lines(self, store, make_product, failing_second_sale):
        make_product("prod-001", stock=5)
        make_product("prod-002", stock=5)

        with pytest.raises(RuntimeError):
            commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert store.get_product("prod-001").stock_quantity == 5
        assert store.get_product("prod-002").stock_quantity == 5
        assert store.get_reservation("ord-1").status == ReservationStatus.FAILED
        assert audit() == []

    def test_aborted_order_can_be_committed_on_retry(self, store, make_product, failing_second_sale, monkeypatch):
        make_product("prod-001", stock=5)
        make_product("prod-002", stock=5)
        with pytest.raises(RuntimeError):
            commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        monkeypatch.setattr(store, "apply_movement", failing_second_sale)
        commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert store.get_product("prod-001").stock_quantity == 3
        assert store.get_product("prod-002").stock_quantity == 4
        assert store.get_reservation("ord-1").status == ReservationStatus.COMMITTED
        assert audit() == []


class TestAbandonedClaim:
    def _crash_mid_decrement(self, store, minutes_ago):
        """Leave ord-1 claimed with one sale written, as a worker killed mid-loop would."""
        store.claim_reservation("ord-1", [("prod-001", 2), ("prod-002", 1)])
        store.apply_movement("prod-001", -2, MovementType.SALE, actor_id="system", order_id="ord-1")
        reservation = store.get_reservation("ord-1")
        store._reservations["ord-1"] = replace(
            reservation, updated_at=datetime.now(UTC) - timedelta(minutes=minutes_ago)
        )

    def test_recent_claim_still_blocks(self, store, make_product):
        make_product("prod-001", stock=5)
        make_product("prod-002", stock=5)
        self._crash_mid_decrement(store, minutes_ago=0)

        with pytest.raises(StorageConflictError):
            commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert store.get_product("prod-001").stock_quantity == 3

    def test_stale_claim_is_taken_over_and_settled(self, store, make_product):
        make_product("prod-001", stock=5)
        make_product("prod-002", stock=5)
        self._crash_mid_decrement(store, minutes_ago=5)

        movements = commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert [m.delta for m in movements] == [-2, -1]
        assert store.get_product("prod-001").stock_quantity == 3
        assert store.get_product("prod-002").stock_quantity == 4
        assert store.get_reservation("ord-1").status == ReservationStatus.COMMITTED

        reversal = [m for m in store.movements(order_id="ord-1") if m.movement_type == MovementType.ADJUSTMENT]
        assert [(m.product_id, m.delta) for m in reversal] == [("prod-001", 2)]
        assert audit() == []

    def test_stale_claim_on_vanished_stock_fails_cleanly(self, store, make_product):
        make_product("prod-001", stock=2)
        make_product("prod-002", stock=0)
        self._crash_mid_decrement(store, minutes_ago=5)

        with pytest.raises(InsufficientStockError):
            commit_order_stock("ord-1", [("prod-001", 2), ("prod-002", 1)])

        assert store.get_product("prod-001").stock_quantity == 2
        assert store.get_reservation("ord-1").status == ReservationStatus.FAILED
        assert audit() == []
