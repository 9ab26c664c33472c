import pytest

from commerce.inventory.store.port import StockKey

PRODUCTS = ("prod-shirt", "prod-mug", "prod-cap")


@pytest.fixture()
def orders(services):
    return services.orders


@pytest.fixture()
def returns(services):
    return services.returns


@pytest.fixture()
def stock_key(tenant_id):
    def _key(product_id):
        return StockKey(tenant_id, product_id)

    return _key


@pytest.fixture()
def delivered_order(orders, ledger, stock_key, tenant_id):
    """A $100 order for three $20 items (plus $40 shipping), paid and delivered."""
    for product_id in PRODUCTS:
        ledger.initialize(stock_key(product_id), 10, reorder_point=0)

    order = orders.place_order(
        tenant_id=tenant_id,
        customer_id="cust-001",
        items=[
            {"product_id": product_id, "quantity": 1, "unit_price": 20.0, "category": "general"}
            for product_id in PRODUCTS
        ],
        pricing={"shipping_cost": 40.0},
    )
    orders.payment_succeeded(order.id, "pi_001")
    orders.mark_shipped(order.id)
    return orders.mark_delivered(order.id)


@pytest.fixture()
def item_ids(delivered_order):
    """Order item ids by product id."""
    return {str(item.product_id): str(item.id) for item in delivered_order.items}


@pytest.fixture()
def inspected_return(returns, delivered_order, item_ids, tenant_id):
    """Shirt and mug sent back; the shirt is accepted, the mug rejected."""
    return_request = returns.open_return(
        tenant_id,
        delivered_order.id,
        "Did not fit",
        [
            {"order_item_id": item_ids["prod-shirt"], "quantity": 1},
            {"order_item_id": item_ids["prod-mug"], "quantity": 1},
        ],
    )
    returns.approve(return_request.id)
    returns.mark_received(return_request.id)
    return returns.inspect(
        return_request.id,
        [
            {"item_id": item_ids["prod-shirt"], "accepted": True},
            {"item_id": item_ids["prod-mug"], "accepted": False, "rejection_reason": "Chipped by customer"},
        ],
    )
