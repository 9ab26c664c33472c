"""Shared BDD fixtures and step definitions for checkout and payment."""

import pytest
from pytest_bdd import given, parsers, then, when

from commerce.inventory.store.port import StockKey
from commerce.order.webhook import parse_payment_event


@pytest.fixture()
def placed():
    """Order ids by role: "order" and "other order"."""
    return {}


@pytest.fixture()
def outcome():
    return {"value": None}


def _pay(orders, payload, outcome):
    outcome["value"] = orders.handle_payment_event(parse_payment_event(payload)).value


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('"{product_id}" has {quantity:d} unit in stock'))
def _(ledger, tenant_id, product_id, quantity):
    ledger.initialize(StockKey(tenant_id, product_id), quantity, reorder_point=0)


@given(parsers.cfparse('a customer has placed an order for {quantity:d} "{product_id}"'))
def _(orders, placed, tenant_id, quantity, product_id):
    order = orders.place_order(
        tenant_id=tenant_id,
        customer_id="cust-a",
        items=[{"product_id": product_id, "quantity": quantity, "unit_price": 20.0}],
    )
    placed["order"] = order.id


@given(parsers.cfparse('another customer has placed an order for {quantity:d} "{product_id}"'))
def _(orders, placed, tenant_id, quantity, product_id):
    order = orders.place_order(
        tenant_id=tenant_id,
        customer_id="cust-b",
        items=[{"product_id": product_id, "quantity": quantity, "unit_price": 20.0}],
    )
    placed["other order"] = order.id


@given(parsers.re(r"the payment for the (?P<role>order|other order) succeeds"))
@when(parsers.re(r"the payment for the (?P<role>order|other order) succeeds"))
def _(orders, placed, outcome, payment_payload, role):
    _pay(orders, payment_payload(placed[role], payment_id=f"pi_{role.replace(' ', '_')}"), outcome)


@when(parsers.re(r"the payment for the (?P<role>order|other order) fails"))
def _(orders, placed, outcome, failure_payload, role):
    _pay(orders, failure_payload(placed[role]), outcome)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the webhook outcome is "{value}"'))
def _(outcome, value):
    assert outcome["value"] == value


@then(parsers.cfparse('the order is "{status}" with payment "{payment_status}"'))
def _(orders, placed, status, payment_status):
    order = orders.get(placed["order"])
    assert order.status == status
    assert order.payment_status == payment_status


@then("the other order needs attention")
def _(orders, placed):
    order = orders.get(placed["other order"])
    assert order.requires_attention is True
    assert order.status == "Cancelled"


@then(parsers.cfparse('"{product_id}" has {quantity:d} unit available'))
@then(parsers.cfparse('"{product_id}" has {quantity:d} units available'))
def _(ledger, tenant_id, product_id, quantity):
    assert ledger.available(StockKey(tenant_id, product_id)) == quantity
