"""Shared BDD step definitions for the stock ledger."""

from commerce.inventory.ledger import adjust_stock
from protean.exceptions import ValidationError
from pytest_bdd import parsers, then, when


@when(parsers.cfparse('the admin "{admin_id}" records {quantity:d} units of "{product_id}" as "{movement_type}"'))
def _(error, admin_id, quantity, product_id, movement_type):
    try:
        adjust_stock(product_id, quantity, movement_type, actor_id=admin_id)
    except ValidationError as exc:
        error["exc"] = exc


@then(parsers.cfparse('the last movement of "{product_id}" is {delta} by "{admin_id}" with no order reference'))
def _(store, product_id, delta, admin_id):
    movement = store.movements(product_id=product_id)[-1]
    assert movement.delta == int(delta)
    assert movement.actor_id == admin_id
    assert movement.order_id is None


@then("the adjustment is rejected")
def _(error):
    assert isinstance(error["exc"], ValidationError)
