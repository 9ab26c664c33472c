import pytest

from commerce.inventory.store.port import StockKey


def _payment_payload(order_id, event_type="payment_intent.succeeded", payment_id="pi_001", event_id="evt_001", **extra):
    obj = {"id": payment_id, "metadata": {"order_id": str(order_id)}}
    obj.update(extra)
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


@pytest.fixture()
def payment_payload():
    """Builds a provider webhook envelope for an order."""
    return _payment_payload


@pytest.fixture()
def failure_payload():
    def _failure(order_id, message="Card declined", **kwargs):
        return _payment_payload(
            order_id,
            event_type="payment_intent.payment_failed",
            last_payment_error={"message": message},
            **kwargs,
        )

    return _failure


@pytest.fixture()
def orders(services):
    return services.orders


@pytest.fixture()
def widget(tenant_id):
    return StockKey(tenant_id, "prod-widget")


@pytest.fixture()
def stocked(ledger, widget):
    """Five widgets on the shelf."""
    ledger.initialize(widget, 5, reorder_point=1)
    return widget


@pytest.fixture()
def place(orders, tenant_id, stocked):
    """Place an order for ``quantity`` widgets at 20.00 each."""

    def _place(quantity=1, customer_id="cust-001", **pricing):
        return orders.place_order(
            tenant_id=tenant_id,
            customer_id=customer_id,
            items=[
                {
                    "product_id": stocked.product_id,
                    "sku": "WIDGET",
                    "title": "Widget",
                    "quantity": quantity,
                    "unit_price": 20.0,
                }
            ],
            pricing=pricing or None,
        )

    return _place
