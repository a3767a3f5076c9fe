"""Shared BDD step definitions for payment reconciliation."""

from datetime import UTC, datetime

import pytest
from commerce.checkout.service import open_payment_attempt
from commerce.order.order import Order
from commerce.payment.reconciliation import confirm_payment, reconcile_payment
from commerce.payment.webhook import handle_gateway_event
from protean import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def deliveries():
    return []


@pytest.fixture()
def retry():
    return {}


def _order(checkout_result):
    return current_domain.repository_for(Order).get(checkout_result.order_id)


@given(parsers.cfparse('a pending order for {quantity:d} units of "{product_id}"'), target_fixture="checkout_result")
def _(place_order, quantity, product_id):
    return place_order([(product_id, quantity)])


@given("the customer completed payment at the gateway")
def _(gateway, checkout_result):
    gateway.complete(checkout_result.payment["intent_id"])


@when(parsers.cfparse('the gateway reports event "{event_id}" as "{event_type}"'))
def _(checkout_result, deliveries, event_id, event_type):
    deliveries.append(
        handle_gateway_event(
            event_id=event_id,
            event_type=event_type,
            intent_id=checkout_result.payment["intent_id"],
            occurred_at=datetime.now(UTC),
        )
    )


@when("the customer confirms the payment")
def _(checkout_result, deliveries):
    deliveries.append(confirm_payment(checkout_result.order_id))


@when("the customer retries the payment")
def _(checkout_result, retry):
    retry.update(open_payment_attempt(checkout_result.order_id))


@when("the new attempt succeeds")
def _(pay, retry, deliveries):
    deliveries.append(pay(retry["intent_id"]))


@when("the first attempt succeeds late")
def _(checkout_result, deliveries):
    deliveries.append(reconcile_payment(checkout_result.payment["intent_id"], "succeeded", event_id="evt_late"))


@then(parsers.cfparse('the last delivery is answered as "{outcome}"'))
def _(deliveries, outcome):
    assert deliveries[-1].outcome == outcome


@then(parsers.cfparse('the order status is "{status}"'))
def _(checkout_result, status):
    assert _order(checkout_result).status == status


@then("the order needs attention")
def _(checkout_result):
    assert _order(checkout_result).needs_attention is True
