"""Commerce bounded context: inventory-safe order fulfillment and returns.

Handles stock reservations and confirmation, the order status/payment-status
lifecycle, and the post-delivery return and refund workflow.
"""

import structlog
from protean.domain import Domain

commerce = Domain(name="commerce")

logger = structlog.get_logger(__name__)
