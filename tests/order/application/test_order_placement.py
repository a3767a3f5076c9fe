"""Application tests for placing orders through checkout."""

import json
import re

import pytest
from commerce.errors import InvalidCartError, OutOfStockAtCreationError
from commerce.inventory.ledger import update_product
from commerce.order.order import Order
from commerce.order.placement import PlaceOrder
from commerce.projections.order_summary import OrderSummary, find_by_number
from protean import current_domain


class TestPlaceOrder:
    def test_command_creates_pending_order(self, make_product, zero_pricing, address):
        make_product(unit_price=10.00, stock=5)

        order_id = current_domain.process(
            PlaceOrder(
                customer_ref="ada@example.com",
                lines=json.dumps([{"product_id": "prod-001", "quantity": 2}]),
                billing_address=json.dumps(address),
                shipping_address=json.dumps(address),
            ),
            asynchronous=False,
        )

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == "pending"
        assert order.pricing.grand_total == pytest.approx(20.0)
        assert re.fullmatch(r"ORD-\d{8}-\d{4}", order.order_number)
        assert [entry.to_status for entry in order.history] == ["pending"]

    def test_placement_does_not_touch_stock(self, store, make_product, place_order):
        make_product(stock=5)
        place_order([("prod-001", 2)])
        assert store.get_product("prod-001").stock_quantity == 5
        assert store.movements(product_id="prod-001")[-1].movement_type.value == "restock"

    def test_order_numbers_are_unique(self, make_product, place_order):
        make_product(stock=50)
        numbers = {place_order([("prod-001", 1)]).order_number for _ in range(3)}
        assert len(numbers) == 3

    def test_invalid_cart_creates_nothing(self, make_product, place_order):
        make_product()
        with pytest.raises(InvalidCartError):
            place_order([("ghost", 1)])
        assert current_domain.repository_for(OrderSummary)._dao.query.all().items == []

    def test_out_of_stock_at_creation(self, make_product, place_order):
        make_product(stock=1)
        with pytest.raises(OutOfStockAtCreationError):
            place_order([("prod-001", 2)])


class TestPriceFreeze:
    def test_catalog_changes_do_not_reprice_the_order(self, make_product, zero_pricing, place_order):
        make_product(unit_price=10.00, stock=5)
        result = place_order([("prod-001", 2)])

        update_product("prod-001", unit_price=99.00)

        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.lines[0].unit_price == pytest.approx(10.0)
        assert order.pricing.grand_total == pytest.approx(20.0)


class TestCheckout:
    def test_checkout_opens_a_payment_attempt(self, make_product, place_order, gateway):
        make_product(stock=5)

        result = place_order([("prod-001", 1)])

        assert result.payment["intent_id"].startswith("pi_fake_")
        assert result.payment["redirect_url"].endswith(result.payment["intent_id"])
        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.payment_status == "requires_payment"
        assert order.payment_intent_id == result.payment["intent_id"]

    def test_gateway_outage_still_creates_the_order(self, make_product, place_order, gateway):
        make_product(stock=5)
        gateway.configure(available=False)

        result = place_order([("prod-001", 1)])

        assert result.payment is None
        assert current_domain.repository_for(Order).get(result.order_id).status == "pending"

    def test_summary_projection(self, make_product, place_order):
        make_product(stock=5)
        result = place_order([("prod-001", 2)])

        summary = find_by_number(result.order_number)
        assert str(summary.order_id) == result.order_id
        assert summary.item_count == 2
        assert summary.payment_status == "requires_payment"
