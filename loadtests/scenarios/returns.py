"""Returns load test scenario.

A delivered order goes through the whole return flow, then the refund is
requested a second time to check it is refused.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    inspection_data,
    order_data,
    payment_succeeded,
    product_id,
    return_data,
    stock_data,
    tenant_id,
)
from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.helpers.state import CheckoutState, ReturnState
from loadtests.scenarios.checkout import SIGNATURE


class ReturnJourney(SequentialTaskSet):
    """Delivered Order -> Open Return -> Approve -> Receive -> Inspect -> Refund -> Refund again."""

    def on_start(self):
        self.order = CheckoutState(tenant_id=tenant_id())
        self.state = ReturnState()

    def _post(self, path, name, expected=200, **kwargs):
        with self.client.post(path, catch_response=True, name=name, **kwargs) as resp:
            if resp.status_code != expected:
                resp.failure(f"{name} failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()
            return resp

    @task
    def deliver_order(self):
        products = [product_id() for _ in range(random.randint(1, 3))]
        for product in products:
            self._post("/inventory/stock", "POST /inventory/stock", 201, json=stock_data(self.order.tenant_id, product))

        resp = self._post("/orders", "POST /orders", 201, json=order_data(self.order.tenant_id, products))
        self.order.order_id = resp.json()["order_id"]

        self._post(
            "/orders/webhooks/payment",
            "POST /orders/webhooks/payment",
            json=payment_succeeded(self.order.order_id),
            headers=SIGNATURE,
        )
        self._post(f"/orders/{self.order.order_id}/ship", "POST /orders/{id}/ship")
        self._post(f"/orders/{self.order.order_id}/deliver", "POST /orders/{id}/deliver")

        with self.client.get(f"/orders/{self.order.order_id}", name="GET /orders/{id}") as resp:
            self.order.item_ids = [item["item_id"] for item in resp.json()["items"]]

    @task
    def open_return(self):
        returned = random.sample(self.order.item_ids, k=random.randint(1, len(self.order.item_ids)))
        resp = self._post(
            "/returns",
            "POST /returns",
            201,
            json=return_data(self.order.tenant_id, self.order.order_id, returned),
        )
        self.state.return_request_id = resp.json()["return_request_id"]
        self.state.returned_item_ids = returned

    @task
    def approve_and_receive(self):
        self._post(f"/returns/{self.state.return_request_id}/approve", "POST /returns/{id}/approve")
        self._post(f"/returns/{self.state.return_request_id}/receive", "POST /returns/{id}/receive")

    @task
    def inspect(self):
        resp = self._post(
            f"/returns/{self.state.return_request_id}/inspect",
            "POST /returns/{id}/inspect",
            json=inspection_data(self.state.returned_item_ids),
        )
        self.state.current_status = resp.json()["status"]

    @task
    def refund(self):
        resp = self._post(f"/returns/{self.state.return_request_id}/refund", "POST /returns/{id}/refund")
        self.state.current_status = resp.json()["status"]

    @task
    def refund_again(self):
        with self.client.post(
            f"/returns/{self.state.return_request_id}/refund",
            catch_response=True,
            name="POST /returns/{id}/refund [again]",
        ) as resp:
            if resp.status_code == 400 and error_code(resp) == "invalid_state":
                resp.success()
            else:
                resp.failure(f"Second refund was not refused: {resp.status_code}: {resp.text[:200]}")

    @task
    def done(self):
        self.interrupt()


class ReturnsUser(HttpUser):
    """Customers sending items back."""

    tasks = [ReturnJourney]
    wait_time = between(2, 5)
