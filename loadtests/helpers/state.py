"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state; nothing is shared
between users. State tracks ids returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class CheckoutState:
    """Tracks one simulated checkout from stock setup to delivery."""

    tenant_id: str | None = None
    product_ids: list[str] = field(default_factory=list)
    order_id: str | None = None
    item_ids: list[str] = field(default_factory=list)
    current_status: str = "Pending"


@dataclass
class ReturnState:
    """Tracks a return request opened against a delivered order."""

    return_request_id: str | None = None
    returned_item_ids: list[str] = field(default_factory=list)
    current_status: str = "Pending"
