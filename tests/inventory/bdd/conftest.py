"""Shared BDD fixtures and step definitions for inventory reservations."""

import pytest
from pytest_bdd import given, parsers, then, when

from commerce.errors import FulfillmentError
from commerce.inventory.store.port import StockKey


@pytest.fixture()
def held():
    """Reservation ids by order id."""
    return {}


@pytest.fixture()
def error():
    return {"exc": None}


def _key(tenant_id, product_id):
    return StockKey(tenant_id, product_id)


def _attempt(error, operation):
    try:
        operation()
    except FulfillmentError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('"{product_id}" has {quantity:d} unit in stock'))
@given(parsers.cfparse('"{product_id}" has {quantity:d} units in stock'))
def _(ledger, tenant_id, product_id, quantity):
    ledger.initialize(_key(tenant_id, product_id), quantity, reorder_point=0)


@given(parsers.cfparse('order "{order_id}" reserves {quantity:d} unit of "{product_id}"'))
@when(parsers.cfparse('order "{order_id}" reserves {quantity:d} unit of "{product_id}"'))
def _(reservations, held, tenant_id, order_id, quantity, product_id):
    reservation = reservations.reserve(tenant_id, order_id, [{"product_id": product_id, "quantity": quantity}])
    held[order_id] = reservation.id


@given(parsers.cfparse('the reservation for "{order_id}" is confirmed'))
@when(parsers.cfparse('the reservation for "{order_id}" is confirmed'))
def _(reservations, held, error, order_id):
    _attempt(error, lambda: reservations.confirm(held[order_id]))


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the reservation for "{order_id}" is released'))
def _(reservations, held, error, order_id):
    _attempt(error, lambda: reservations.release(held[order_id]))


@when(parsers.cfparse("{minutes:d} minutes pass"))
def _(clock, minutes):
    clock.advance(minutes=minutes)


@when("the expiry sweep runs")
def _(reservations):
    reservations.release_expired()


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{product_id}" has {quantity:d} unit available'))
@then(parsers.cfparse('"{product_id}" has {quantity:d} units available'))
def _(ledger, tenant_id, product_id, quantity):
    assert ledger.available(_key(tenant_id, product_id)) == quantity


@then(parsers.cfparse('the reservation for "{order_id}" is "{state}"'))
def _(reservations, held, order_id, state):
    assert reservations.get(held[order_id]).state.value == state


@then(parsers.cfparse('the confirmation fails with "{code}"'))
@then(parsers.cfparse('the release fails with "{code}"'))
def _(error, code):
    assert error["exc"] is not None
    assert error["exc"].code == code
