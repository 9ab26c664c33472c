"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that match the exact field names expected
by the API's Pydantic request schemas.
"""

import random
import uuid

from faker import Faker

fake = Faker()

TENANTS = ["store-001", "store-002", "store-003"]
CATEGORIES = ["apparel", "home", "outdoor", "electronics"]

# ---------- Inventory ----------


def tenant_id() -> str:
    return random.choice(TENANTS)


def product_id() -> str:
    """Generate unique product IDs like 'prod-lt-a1b2c3d4'."""
    return f"prod-lt-{uuid.uuid4().hex[:8]}"


def stock_data(tenant: str, product: str, quantity: int | None = None) -> dict:
    """Generate a StockRequest payload that initializes a stock record."""
    return {
        "tenant_id": tenant,
        "product_id": product,
        "quantity": quantity if quantity is not None else random.randint(20, 200),
        "reorder_point": random.randint(1, 10),
        "operation": "initialize",
    }


def restock_data(tenant: str, product: str) -> dict:
    return {
        "tenant_id": tenant,
        "product_id": product,
        "quantity": random.randint(5, 50),
        "operation": "restock",
        "reference": f"PO-{fake.bothify('####-??').upper()}",
    }


# ---------- Orders ----------


def order_item(product: str, quantity: int = 1) -> dict:
    return {
        "product_id": product,
        "sku": fake.bothify("SKU-####-??").upper(),
        "title": fake.catch_phrase()[:255],
        "category": random.choice(CATEGORIES),
        "quantity": quantity,
        "unit_price": round(random.uniform(5.0, 150.0), 2),
    }


def order_data(tenant: str, products: list[str]) -> dict:
    """Generate a PlaceOrderRequest payload for the given products."""
    return {
        "tenant_id": tenant,
        "customer_id": f"cust-{uuid.uuid4().hex[:8]}",
        "items": [order_item(p, quantity=random.randint(1, 2)) for p in products],
        "pricing": {
            "shipping_cost": random.choice([0.0, 4.99, 9.99]),
            "tax_total": round(random.uniform(0.0, 12.0), 2),
        },
    }


def payment_succeeded(order_id: str) -> dict:
    """Generate a provider success webhook envelope."""
    return {
        "id": f"evt_{uuid.uuid4().hex[:16]}",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": f"pi_{uuid.uuid4().hex[:16]}", "metadata": {"order_id": order_id}}},
    }


def payment_failed(order_id: str) -> dict:
    return {
        "id": f"evt_{uuid.uuid4().hex[:16]}",
        "type": "payment_intent.payment_failed",
        "data": {
            "object": {
                "id": f"pi_{uuid.uuid4().hex[:16]}",
                "metadata": {"order_id": order_id},
                "last_payment_error": {"message": random.choice(["Card declined", "Insufficient funds"])},
            }
        },
    }


# ---------- Returns ----------


def return_data(tenant: str, order_id: str, item_ids: list[str]) -> dict:
    """Generate an OpenReturnRequest payload returning one unit of each item."""
    return {
        "tenant_id": tenant,
        "order_id": order_id,
        "reason": random.choice(["Did not fit", "Not as pictured", "Arrived damaged", fake.sentence()[:200]]),
        "items": [{"order_item_id": item_id, "quantity": 1} for item_id in item_ids],
    }


def inspection_data(item_ids: list[str]) -> dict:
    """Accept or reject each item at random; rejected items carry a reason."""
    decisions = []
    for item_id in item_ids:
        accepted = random.random() < 0.7
        decision = {"item_id": item_id, "accepted": accepted}
        if not accepted:
            decision["rejection_reason"] = random.choice(["Worn", "Missing tags", "Damaged by customer"])
        decisions.append(decision)
    return {"decisions": decisions}
