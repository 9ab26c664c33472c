"""Domain events for the Order aggregate.

All events are versioned, immutable facts representing state changes.
Notification and reporting collaborators subscribe to them; none of them
feeds back into the core's decisions.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from commerce.domain import commerce


@commerce.event(part_of="Order")
class OrderPlaced:
    """An order was created at checkout and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    grand_total = Float(required=True)
    currency = String(default="USD")
    placed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class ReservationAttached:
    __version__ = 1

    order_id = Identifier(required=True)
    reservation_id = Identifier(required=True)


@commerce.event(part_of="Order")
class PaymentCompleted:
    """Payment was captured and the reservation confirmed; fulfillment can start."""

    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    payment_id = String(required=True)
    amount = Float(required=True)
    completed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class PaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderFlaggedForReview:
    """The order needs manual follow-up, typically a refund of a captured payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    reason = String(required=True)
    payment_id = String()
    flagged_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderPacked:
    __version__ = 1

    order_id = Identifier(required=True)
    packed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderRefunded:
    """Money was returned to the customer for (part of) the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    return_request_id = Identifier(required=True)
    refund_id = String()
    amount = Float(required=True)
    refunded_total = Float(required=True)
    fully_refunded = Boolean(default=False)
    refunded_at = DateTime(required=True)
