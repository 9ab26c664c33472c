import pytest

from commerce.inventory.store.port import StockKey


@pytest.fixture()
def widget(tenant_id):
    return StockKey(tenant_id, "prod-widget")


@pytest.fixture()
def gadget_red(tenant_id):
    return StockKey(tenant_id, "prod-gadget", "var-red")


@pytest.fixture()
def reservations(services):
    return services.reservations
