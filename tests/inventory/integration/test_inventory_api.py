"""Integration tests for the inventory endpoints via TestClient."""

import pytest
from fastapi.testclient import TestClient

from commerce.api.app import create_app


@pytest.fixture()
def client(services):
    return TestClient(create_app(services))


def _set_stock(client, tenant_id, **overrides):
    payload = {
        "tenant_id": tenant_id,
        "product_id": "prod-widget",
        "quantity": 10,
        "reorder_point": 2,
    }
    payload.update(overrides)
    response = client.post("/inventory/stock", json=payload)
    assert response.status_code == 201
    return response.json()


def _reserve(client, tenant_id, order_id="ord-001", quantity=1, product_id="prod-widget"):
    response = client.post(
        "/inventory/reservations",
        json={
            "tenant_id": tenant_id,
            "order_id": order_id,
            "items": [{"product_id": product_id, "quantity": quantity}],
        },
    )
    assert response.status_code == 201
    return response.json()["reservation_id"]


class TestStockEndpoints:
    def test_initialize_stock(self, client, tenant_id):
        data = _set_stock(client, tenant_id)
        assert data["stock"] == 10
        assert data["is_low"] is False

    def test_restock_adds_units(self, client, tenant_id):
        _set_stock(client, tenant_id, quantity=1)
        data = _set_stock(client, tenant_id, quantity=4, operation="restock", reference="PO-77")
        assert data["stock"] == 5

    def test_restock_unknown_unit(self, client, tenant_id):
        response = client.post(
            "/inventory/stock",
            json={"tenant_id": tenant_id, "product_id": "prod-none", "quantity": 4, "operation": "restock"},
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_get_stock(self, client, tenant_id):
        _set_stock(client, tenant_id, quantity=2)
        response = client.get("/inventory/stock/prod-widget", params={"tenant_id": tenant_id})
        assert response.status_code == 200
        assert response.json()["is_low"] is True

    def test_get_stock_is_tenant_scoped(self, client, tenant_id):
        _set_stock(client, tenant_id)
        response = client.get("/inventory/stock/prod-widget", params={"tenant_id": "store-002"})
        assert response.status_code == 404

    def test_negative_quantity_is_rejected(self, client, tenant_id):
        response = client.post(
            "/inventory/stock",
            json={"tenant_id": tenant_id, "product_id": "prod-widget", "quantity": -1},
        )
        assert response.status_code == 422


class TestReservationEndpoints:
    def test_reserve_does_not_touch_stock(self, client, tenant_id, ledger, widget):
        _set_stock(client, tenant_id, quantity=3)
        _reserve(client, tenant_id, quantity=2)
        assert ledger.available(widget) == 3

    def test_confirm(self, client, tenant_id, ledger, widget):
        _set_stock(client, tenant_id, quantity=3)
        reservation_id = _reserve(client, tenant_id, quantity=2)

        response = client.post(f"/inventory/reservations/{reservation_id}/confirm")

        assert response.status_code == 200
        assert response.json()["state"] == "Confirmed"
        assert ledger.available(widget) == 1

    def test_confirm_twice_conflicts(self, client, tenant_id):
        _set_stock(client, tenant_id, quantity=3)
        reservation_id = _reserve(client, tenant_id)
        client.post(f"/inventory/reservations/{reservation_id}/confirm")

        response = client.post(f"/inventory/reservations/{reservation_id}/confirm")

        assert response.status_code == 409
        assert response.json()["error"] == "already_processed"
        assert response.json()["state"] == "Confirmed"

    def test_confirm_after_release_reports_released(self, client, tenant_id, ledger, widget):
        _set_stock(client, tenant_id, quantity=3)
        reservation_id = _reserve(client, tenant_id)
        client.post(f"/inventory/reservations/{reservation_id}/release")

        response = client.post(f"/inventory/reservations/{reservation_id}/confirm")

        assert response.status_code == 409
        assert response.json()["error"] == "already_processed"
        assert response.json()["state"] == "Released"
        assert ledger.available(widget) == 3

    def test_confirm_without_stock(self, client, tenant_id, ledger, widget):
        _set_stock(client, tenant_id, quantity=1)
        first = _reserve(client, tenant_id, order_id="ord-a")
        second = _reserve(client, tenant_id, order_id="ord-b")
        client.post(f"/inventory/reservations/{first}/confirm")

        response = client.post(f"/inventory/reservations/{second}/confirm")

        assert response.status_code == 422
        assert response.json()["error"] == "stock_unavailable"
        assert ledger.available(widget) == 0

    def test_release(self, client, tenant_id):
        _set_stock(client, tenant_id)
        reservation_id = _reserve(client, tenant_id)

        response = client.post(
            f"/inventory/reservations/{reservation_id}/release", json={"reason": "payment_failed"}
        )

        assert response.status_code == 200
        assert response.json()["state"] == "Released"

    def test_release_without_body(self, client, tenant_id):
        _set_stock(client, tenant_id)
        reservation_id = _reserve(client, tenant_id)

        response = client.post(f"/inventory/reservations/{reservation_id}/release")

        assert response.status_code == 200

    def test_unknown_reservation(self, client):
        response = client.post("/inventory/reservations/missing/confirm")
        assert response.status_code == 404

    def test_empty_reservation_is_rejected(self, client, tenant_id):
        response = client.post(
            "/inventory/reservations",
            json={"tenant_id": tenant_id, "order_id": "ord-1", "items": []},
        )
        assert response.status_code == 422


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["environment"] == "test"
