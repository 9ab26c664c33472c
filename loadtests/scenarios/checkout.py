"""Checkout load test scenarios.

CheckoutJourney walks one order from stock setup through payment to
delivery. LastUnitContentionUser has many users fight over a handful of
units so the conditional stock decrement is exercised under load: losing
a race is an expected outcome, not a failure.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    order_data,
    payment_failed,
    payment_succeeded,
    product_id,
    restock_data,
    stock_data,
    tenant_id,
)
from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.helpers.state import CheckoutState

SIGNATURE = {"Stripe-Signature": "test-signature"}

# A few hot products shared by every contention user
HOT_TENANT = "store-hot"
HOT_PRODUCTS = [f"prod-hot-{n}" for n in range(3)]


class CheckoutJourney(SequentialTaskSet):
    """Stock -> Place Order -> Pay (or fail) -> Pack -> Ship -> Deliver."""

    def on_start(self):
        self.state = CheckoutState(tenant_id=tenant_id())

    @task
    def set_stock(self):
        for _ in range(random.randint(1, 3)):
            product = product_id()
            with self.client.post(
                "/inventory/stock",
                json=stock_data(self.state.tenant_id, product),
                catch_response=True,
                name="POST /inventory/stock",
            ) as resp:
                if resp.status_code == 201:
                    self.state.product_ids.append(product)
                else:
                    resp.failure(f"Set stock failed: {resp.status_code}: {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def place_order(self):
        with self.client.post(
            "/orders",
            json=order_data(self.state.tenant_id, self.state.product_ids),
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
            else:
                resp.failure(f"Place order failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def pay(self):
        # One checkout in ten has its card declined
        declined = random.random() < 0.1
        payload = payment_failed(self.state.order_id) if declined else payment_succeeded(self.state.order_id)
        with self.client.post(
            "/orders/webhooks/payment",
            json=payload,
            headers=SIGNATURE,
            catch_response=True,
            name="POST /orders/webhooks/payment",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Payment webhook failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()
            elif declined or resp.json()["outcome"] != "applied":
                self.interrupt()

    @task
    def replay_payment(self):
        """Providers retry deliveries; a replay must be acknowledged as a duplicate."""
        with self.client.post(
            "/orders/webhooks/payment",
            json=payment_succeeded(self.state.order_id),
            headers=SIGNATURE,
            catch_response=True,
            name="POST /orders/webhooks/payment [replay]",
        ) as resp:
            if resp.status_code != 200 or resp.json()["outcome"] != "duplicate":
                resp.failure(f"Replay not deduplicated: {resp.status_code}: {resp.text[:200]}")

    @task
    def fulfil(self):
        for action in ("pack", "ship", "deliver"):
            with self.client.post(
                f"/orders/{self.state.order_id}/{action}",
                catch_response=True,
                name=f"POST /orders/{{id}}/{action}",
            ) as resp:
                if resp.status_code == 200:
                    self.state.current_status = resp.json()["status"]
                else:
                    resp.failure(f"{action} failed: {resp.status_code}: {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    """Customers checking out at a steady pace."""

    tasks = [CheckoutJourney]
    wait_time = between(1, 3)


class LastUnitContentionUser(HttpUser):
    """Many buyers racing for a few units of the same products."""

    wait_time = between(0.1, 0.5)

    def on_start(self):
        for product in HOT_PRODUCTS:
            with self.client.get(
                f"/inventory/stock/{product}",
                params={"tenant_id": HOT_TENANT},
                catch_response=True,
                name="GET /inventory/stock/{id} [hot]",
            ) as resp:
                if resp.status_code == 404:
                    resp.success()
                    self.client.post(
                        "/inventory/stock",
                        json=stock_data(HOT_TENANT, product, quantity=5),
                        name="POST /inventory/stock [hot]",
                    )

    @task(10)
    def buy_last_unit(self):
        product = random.choice(HOT_PRODUCTS)
        with self.client.post(
            "/orders",
            json=order_data(HOT_TENANT, [product]),
            catch_response=True,
            name="POST /orders [hot]",
        ) as resp:
            if resp.status_code == 422 and error_code(resp) == "stock_unavailable":
                resp.success()
                return
            if resp.status_code != 201:
                resp.failure(f"Place order failed: {resp.status_code}: {extract_error_detail(resp)}")
                return
            order_id = resp.json()["order_id"]

        with self.client.post(
            "/orders/webhooks/payment",
            json=payment_succeeded(order_id),
            headers=SIGNATURE,
            catch_response=True,
            name="POST /orders/webhooks/payment [hot]",
        ) as resp:
            if resp.status_code != 200 or resp.json()["outcome"] not in ("applied", "stock_unavailable"):
                resp.failure(f"Unexpected payment outcome: {resp.status_code}: {resp.text[:200]}")

    @task(1)
    def restock(self):
        for product in HOT_PRODUCTS:
            self.client.post(
                "/inventory/stock",
                json=restock_data(HOT_TENANT, product),
                name="POST /inventory/stock [restock hot]",
            )

    @task(1)
    def sweep_expired(self):
        self.client.post("/inventory/maintenance/expire-reservations", name="POST /expire-reservations")
