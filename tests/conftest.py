import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture
from pytest_bdd import given, parsers, then


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay before the domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def commerce_bed():
    from commerce.domain import commerce

    bed = DomainFixture(commerce)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(commerce_bed):
    with commerce_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Give every test a fresh stock store and gateway, and clean up afterwards."""
    from commerce.cart.pricing import reset_pricing_policy
    from commerce.config import reset_settings
    from commerce.inventory import set_stock_store
    from commerce.inventory.store.memory_adapter import MemoryStockStore
    from commerce.payment.gateway import set_gateway
    from commerce.payment.gateway.fake_adapter import FakeGateway

    reset_settings()
    reset_pricing_policy()
    set_stock_store(MemoryStockStore())
    set_gateway(FakeGateway(webhook_secret="whsec_test"))

    yield

    from commerce.inventory import reset_stock_store
    from commerce.payment.gateway import reset_gateway
    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    reset_stock_store()
    reset_gateway()
    reset_pricing_policy()
    reset_settings()


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def store():
    from commerce.inventory import get_stock_store

    return get_stock_store()


@pytest.fixture()
def gateway():
    from commerce.payment.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def zero_pricing():
    """No shipping, no tax: grand total equals the sum of line totals."""
    from commerce.cart.pricing import PricingPolicy, set_pricing_policy

    policy = PricingPolicy.zero("EUR")
    set_pricing_policy(policy)
    return policy


@pytest.fixture()
def address():
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "address_line1": "12 Rue de la Paix",
        "city": "Paris",
        "postal_code": "75002",
        "country": "FR",
    }


@pytest.fixture()
def make_product():
    from commerce.inventory.ledger import register_product

    def _make(product_id="prod-001", unit_price=10.00, stock=5, **kwargs):
        kwargs.setdefault("sku", f"SKU-{product_id}")
        kwargs.setdefault("title", f"Product {product_id}")
        return register_product(product_id, unit_price=unit_price, initial_stock=stock, **kwargs)

    return _make


@pytest.fixture()
def place_order(address):
    """Check out a cart and return the CheckoutResult."""
    from commerce.checkout.service import checkout

    def _place(lines=(("prod-001", 2),), customer_ref="ada@example.com"):
        return checkout(
            customer_ref=customer_ref,
            lines=[{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines],
            billing_address=address,
            shipping_address=address,
        )

    return _place


@pytest.fixture()
def pay(gateway):
    """Complete an intent at the gateway and deliver the outcome as a webhook would."""
    from commerce.payment.reconciliation import reconcile_payment

    def _pay(intent_id, status="succeeded", event_id=None, failure_reason=None):
        intent = gateway.complete(intent_id, status=status, failure_reason=failure_reason)
        return reconcile_payment(
            intent_id,
            status,
            occurred_at=intent.updated_at,
            event_id=event_id,
            source="webhook",
            failure_reason=failure_reason,
        )

    return _pay


# ---------------------------------------------------------------------------
# Shared BDD steps
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Holds the exception raised by a When step, if any."""
    return {"exc": None}


@given(parsers.cfparse('a product "{product_id}" with stock {stock:d} priced at {price:f}'))
def _(make_product, product_id, stock, price):
    make_product(product_id, unit_price=price, stock=stock)


@given(parsers.cfparse('a product "{product_id}" with stock {stock:d}'))
def _(make_product, product_id, stock):
    make_product(product_id, stock=stock)


@given("prices include no shipping or tax")
def _(zero_pricing):
    return zero_pricing


@then(parsers.cfparse('the stock of "{product_id}" is {quantity:d}'))
def _(store, product_id, quantity):
    assert store.get_product(product_id).stock_quantity == quantity


@then("the ledger matches every stock counter")
def _():
    from commerce.inventory.ledger import audit

    assert audit() == []
