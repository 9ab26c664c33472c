"""Shared BDD fixtures and step definitions for returns."""

import pytest
from pytest_bdd import given, parsers, then, when

from commerce.errors import FulfillmentError

NAMES = {"shirt": "prod-shirt", "mug": "prod-mug", "cap": "prod-cap"}


@pytest.fixture()
def current():
    return {"return_id": None, "refund": None, "exc": None}


def _attempt(current, operation):
    try:
        return operation()
    except FulfillmentError as exc:
        current["exc"] = exc
        return None


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a delivered $100 order for a shirt, a mug and a cap at $20 each")
def _(delivered_order):
    assert delivered_order.grand_total == 100.0


@given(parsers.cfparse("{days:d} days have passed since delivery"))
def _(clock, days):
    clock.advance(days=days)


@given(parsers.cfparse("the customer returns the {first} and the {second}"))
@when(parsers.cfparse("the customer returns the {first} and the {second}"))
def _(returns, delivered_order, item_ids, tenant_id, current, first, second):
    items = [{"order_item_id": item_ids[NAMES[name]], "quantity": 1} for name in (first, second)]
    return_request = _attempt(
        current, lambda: returns.open_return(tenant_id, delivered_order.id, "Not as pictured", items)
    )
    if return_request is not None:
        current["return_id"] = return_request.id


@given("the return is received")
def _(returns, current):
    returns.approve(current["return_id"])
    returns.mark_received(current["return_id"])


@given(parsers.cfparse("the {accepted} is accepted and the {rejected} is rejected"))
@when(parsers.cfparse("the {accepted} is accepted and the {rejected} is rejected"))
def _(returns, item_ids, current, accepted, rejected):
    returns.inspect(
        current["return_id"],
        [
            {"item_id": item_ids[NAMES[accepted]], "accepted": True},
            {"item_id": item_ids[NAMES[rejected]], "accepted": False, "rejection_reason": "Damaged by customer"},
        ],
    )


@given("the return is refunded")
@when("the return is refunded")
def _(returns, current):
    refunded = _attempt(current, lambda: returns.refund(current["return_id"]))
    if refunded is not None:
        current["refund"] = refunded.refund_amount


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the refund is ${amount:f}"))
def _(current, amount):
    assert current["refund"] == amount


@then(parsers.cfparse("the {name} is back in stock"))
def _(ledger, stock_key, name):
    assert ledger.available(stock_key(NAMES[name])) == 10


@then(parsers.cfparse("the {name} is not back in stock"))
def _(ledger, stock_key, name):
    assert ledger.available(stock_key(NAMES[name])) == 9


@then(parsers.cfparse("the order has ${amount:f} refunded"))
def _(orders, delivered_order, amount):
    assert orders.get(delivered_order.id).refunded_total == amount


@then(parsers.cfparse("the provider issued {count:d} refund"))
def _(gateway, count):
    assert gateway.refunds_issued() == count


@then(parsers.cfparse('the refund fails with "{code}"'))
@then(parsers.cfparse('the return fails with "{code}"'))
def _(current, code):
    assert current["exc"] is not None
    assert current["exc"].code == code
