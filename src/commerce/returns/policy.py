"""Return windows: how long after delivery an item may still be returned."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ReturnPolicy:
    """How long after delivery an item may be returned.

    A product override wins over a category override, which wins over the
    default window.
    """

    default_days: int = 30
    product_overrides: dict[str, int] = field(default_factory=dict)
    category_overrides: dict[str, int] = field(default_factory=dict)

    def window_days(self, product_id, category=None) -> int:
        if str(product_id) in self.product_overrides:
            return self.product_overrides[str(product_id)]
        if category and category in self.category_overrides:
            return self.category_overrides[category]
        return self.default_days

    def is_within_window(self, order, item, now: datetime) -> bool:
        """Whole days elapsed since delivery must not exceed the window.

        Orders without a delivery timestamp are measured from creation.
        """
        started = order.delivered_at or order.created_at
        return (now - started).days <= self.window_days(item.product_id, item.category)
