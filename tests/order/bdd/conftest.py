"""Shared BDD fixtures and step definitions for the order lifecycle."""

import pytest
from commerce.errors import IllegalTransitionError
from commerce.inventory.store.port import MovementType
from commerce.order.order import Order
from commerce.order.transitions import change_order_status
from protean import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def order(checkout_result):
    """The order as currently persisted."""

    def _load():
        return current_domain.repository_for(Order).get(checkout_result.order_id)

    return _load


def _movements(store, order_id, movement_type):
    return [m for m in store.movements(order_id=order_id) if m.movement_type == movement_type]


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a processing order for {quantity:d} units of "{product_id}"'), target_fixture="checkout_result")
def _(place_order, pay, quantity, product_id):
    result = place_order([(product_id, quantity)])
    pay(result.payment["intent_id"])
    return result


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the customer checks out {quantity:d} units of "{product_id}"'), target_fixture="checkout_result")
def _(place_order, quantity, product_id):
    return place_order([(product_id, quantity)])


@when("the payment succeeds", target_fixture="payment_result")
def _(pay, checkout_result):
    return pay(checkout_result.payment["intent_id"], event_id="evt_paid")


@when(parsers.cfparse('the admin "{admin_id}" cancels the order with comment "{comment}"'))
def _(checkout_result, error, admin_id, comment):
    try:
        change_order_status(checkout_result.order_id, "cancelled", "admin", actor_id=admin_id, comment=comment)
    except IllegalTransitionError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the admin "{admin_id}" moves the order to "{status}"'))
def _(checkout_result, error, admin_id, status):
    try:
        change_order_status(checkout_result.order_id, status, "admin", actor_id=admin_id)
    except IllegalTransitionError as exc:
        error["exc"] = exc


@when("the customer cancels the order")
def _(checkout_result, error):
    try:
        change_order_status(checkout_result.order_id, "cancelled", "customer", actor_id="ada@example.com")
    except IllegalTransitionError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order total is {total:f}"))
def _(order, total):
    assert order().pricing.grand_total == pytest.approx(total)


@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert order().status == status


@then(parsers.cfparse("one sale movement of -{quantity:d} is recorded for the order"))
def _(store, checkout_result, quantity):
    sales = _movements(store, checkout_result.order_id, MovementType.SALE)
    assert [m.delta for m in sales] == [-quantity]


@then(parsers.cfparse("one return movement of {quantity:d} is recorded for the order"))
def _(store, checkout_result, quantity):
    returns = _movements(store, checkout_result.order_id, MovementType.RETURN)
    assert [m.delta for m in returns] == [quantity]


@then(parsers.cfparse('the last history row was written by the admin "{admin_id}"'))
def _(order, admin_id):
    entry = order().history[-1]
    assert entry.actor_role == "admin"
    assert entry.actor_id == admin_id
    assert entry.comment == "customer request"


@then("the change is rejected as an illegal transition")
def _(error):
    assert isinstance(error["exc"], IllegalTransitionError)
