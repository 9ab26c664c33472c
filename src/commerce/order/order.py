"""Order aggregate (CQRS): fulfillment status and payment status as two axes.

The two axes evolve independently, but payment-axis transitions drive
fulfillment-axis side effects (payment success starts processing, payment
failure cancels). Every legal move is listed in a transition map; anything
else is rejected with InvalidState.

Fulfillment axis:
    PENDING → PROCESSING → (PACKED →) SHIPPED → DELIVERED
    PENDING → CANCELLED

Payment axis:
    PENDING → COMPLETED → REFUNDED
    PENDING → FAILED

Line items and their prices are snapshots taken at checkout; they never
change afterwards.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from commerce.domain import commerce
from commerce.errors import InvalidState, InvariantViolation
from commerce.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderFlaggedForReview,
    OrderPacked,
    OrderPlaced,
    OrderRefunded,
    OrderShipped,
    PaymentCompleted,
    PaymentFailed,
    ReservationAttached,
)

# Refund sums are compared with this tolerance to absorb float rounding
MONEY_TOLERANCE = 0.005


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class StatusAxis(Enum):
    FULFILLMENT = "Fulfillment"
    PAYMENT = "Payment"


# State machine transition maps
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.PACKED, OrderStatus.SHIPPED},
    OrderStatus.PACKED: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_VALID_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@commerce.value_object(part_of="Order")
class OrderPricing:
    """Financial summary of an order, locked at checkout.

    Tax and shipping amounts are taken as given; computing them is the
    checkout's business.
    """

    subtotal = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    tax_total = Float(default=0.0)
    discount_total = Float(default=0.0)
    grand_total = Float(default=0.0)
    currency = String(max_length=3, default="USD")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@commerce.entity(part_of="Order")
class OrderItem:
    """A line item: one product variant, a quantity and the unit price paid."""

    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(max_length=50)
    title = String(max_length=255)
    category = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


@commerce.entity(part_of="Order")
class OrderRefund:
    """Money returned against one return request."""

    return_request_id = Identifier(required=True)
    refund_id = String(max_length=255)
    amount = Float(required=True, min_value=0.0)
    refunded_at = DateTime()


@commerce.entity(part_of="Order")
class OrderReturnClaim:
    """Units of one order item that an open return request has claimed."""

    return_request_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@commerce.entity(part_of="Order")
class OrderStatusChange:
    axis = String(choices=StatusAxis, required=True)
    from_status = String(max_length=50)
    to_status = String(required=True, max_length=50)
    reason = String(max_length=500)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@commerce.aggregate
class Order:
    tenant_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    items = HasMany(OrderItem)
    pricing = ValueObject(OrderPricing)
    reservation_id = Identifier()
    payment_id = String(max_length=255)
    refunded_total = Float(default=0.0)
    refunds = HasMany(OrderRefund)
    return_claims = HasMany(OrderReturnClaim)
    history = HasMany(OrderStatusChange)
    requires_attention = Boolean(default=False)
    attention_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, tenant_id, customer_id, items_data, pricing=None, placed_at=None):
        """Create a new order from checkout data.

        Args:
            tenant_id: The store the order belongs to.
            customer_id: The customer placing the order.
            items_data: List of dicts with product_id, quantity, unit_price
                        and optionally variant_id, sku, title, category.
            pricing: Dict with shipping_cost, tax_total, discount_total and
                     currency. Subtotal and grand total are derived from the
                     items unless grand_total is given.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = placed_at or datetime.now(UTC)
        pricing = pricing or {}
        items = [
            OrderItem(
                product_id=item["product_id"],
                variant_id=item.get("variant_id"),
                sku=item.get("sku"),
                title=item.get("title"),
                category=item.get("category"),
                quantity=item["quantity"],
                unit_price=item["unit_price"],
            )
            for item in items_data
        ]

        subtotal = round(sum(i.quantity * i.unit_price for i in items), 2)
        shipping_cost = pricing.get("shipping_cost", 0.0)
        tax_total = pricing.get("tax_total", 0.0)
        discount_total = pricing.get("discount_total", 0.0)
        grand_total = pricing.get("grand_total")
        if grand_total is None:
            grand_total = round(subtotal + shipping_cost + tax_total - discount_total, 2)

        order = cls(
            tenant_id=tenant_id,
            customer_id=customer_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            items=items,
            pricing=OrderPricing(
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                tax_total=tax_total,
                discount_total=discount_total,
                grand_total=grand_total,
                currency=pricing.get("currency", "USD"),
            ),
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                tenant_id=str(tenant_id),
                customer_id=str(customer_id),
                items=json.dumps(
                    [
                        {
                            "item_id": str(i.id),
                            "product_id": str(i.product_id),
                            "variant_id": str(i.variant_id) if i.variant_id else None,
                            "quantity": i.quantity,
                            "unit_price": i.unit_price,
                        }
                        for i in items
                    ]
                ),
                grand_total=grand_total,
                currency=order.pricing.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate that the current fulfillment state allows the target."""
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidState(
                f"Cannot transition order from {current.value} to {target_status.value}",
                state=current,
                order_id=str(self.id),
            )

    def _assert_can_transition_payment(self, target_status):
        current = PaymentStatus(self.payment_status)
        if target_status not in _VALID_PAYMENT_TRANSITIONS.get(current, set()):
            raise InvalidState(
                f"Cannot transition payment from {current.value} to {target_status.value}",
                state=current,
                order_id=str(self.id),
            )

    def _set_status(self, target, at, reason=None):
        self.add_history(
            OrderStatusChange(
                axis=StatusAxis.FULFILLMENT.value,
                from_status=self.status,
                to_status=target.value,
                reason=reason,
                changed_at=at,
            )
        )
        self.status = target.value
        self.updated_at = at

    def _set_payment_status(self, target, at, reason=None):
        self.add_history(
            OrderStatusChange(
                axis=StatusAxis.PAYMENT.value,
                from_status=self.payment_status,
                to_status=target.value,
                reason=reason,
                changed_at=at,
            )
        )
        self.payment_status = target.value
        self.updated_at = at

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def grand_total(self) -> float:
        return self.pricing.grand_total if self.pricing else 0.0

    @property
    def remaining_refundable(self) -> float:
        return round(self.grand_total - (self.refunded_total or 0.0), 2)

    def refund_booked_for(self, return_request_id) -> float:
        return sum(r.amount for r in self.refunds if str(r.return_request_id) == str(return_request_id))

    def item(self, item_id):
        return next((i for i in self.items if str(i.id) == str(item_id)), None)

    def reservation_lines(self) -> list[dict]:
        return [
            {
                "product_id": str(i.product_id),
                "variant_id": str(i.variant_id) if i.variant_id else None,
                "quantity": i.quantity,
            }
            for i in self.items
        ]

    # -------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------
    def attach_reservation(self, reservation_id):
        if self.reservation_id:
            raise InvalidState("Order already has a reservation", order_id=str(self.id))
        self.reservation_id = reservation_id
        self.raise_(
            ReservationAttached(
                order_id=str(self.id),
                reservation_id=str(reservation_id),
            )
        )

    # -------------------------------------------------------------------
    # Payment axis
    # -------------------------------------------------------------------
    def record_payment_success(self, payment_id, at=None):
        """Payment captured and stock deducted: start processing."""
        self._assert_can_transition_payment(PaymentStatus.COMPLETED)
        self._assert_can_transition(OrderStatus.PROCESSING)

        now = at or datetime.now(UTC)
        self.payment_id = payment_id
        self._set_payment_status(PaymentStatus.COMPLETED, now)
        self._set_status(OrderStatus.PROCESSING, now)

        self.raise_(
            PaymentCompleted(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                payment_id=payment_id,
                amount=self.grand_total,
                completed_at=now,
            )
        )

    def record_payment_failure(self, reason, at=None):
        """Payment failed: the order is cancelled."""
        self._assert_can_transition_payment(PaymentStatus.FAILED)

        now = at or datetime.now(UTC)
        self._set_payment_status(PaymentStatus.FAILED, now, reason=reason)
        if OrderStatus(self.status) != OrderStatus.CANCELLED:
            self._assert_can_transition(OrderStatus.CANCELLED)
            self._set_status(OrderStatus.CANCELLED, now, reason=reason)
            self.cancellation_reason = reason

        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                reason=reason,
                failed_at=now,
            )
        )

    def fail_after_capture(self, payment_id, reason, at=None):
        """Payment was captured but stock could not be secured.

        The order is cancelled, the payment marked failed, and the order is
        flagged so the captured money gets refunded by hand.
        """
        self.payment_id = payment_id
        self.record_payment_failure(reason, at=at)
        self.flag_for_review(reason, at=at)

    def flag_for_review(self, reason, at=None):
        now = at or datetime.now(UTC)
        self.requires_attention = True
        self.attention_reason = reason
        self.updated_at = now
        self.raise_(
            OrderFlaggedForReview(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                reason=reason,
                payment_id=self.payment_id,
                flagged_at=now,
            )
        )

    def record_refund(self, return_request_id, refund_id, amount, at=None):
        """Book a refund issued for one return request.

        Returns False, changing nothing, when that return request was already
        booked. Raises InvariantViolation when the refunds would exceed what
        the customer paid.
        """
        if any(str(r.return_request_id) == str(return_request_id) for r in self.refunds):
            return False

        current = PaymentStatus(self.payment_status)
        if current != PaymentStatus.COMPLETED:
            raise InvalidState(
                f"Cannot refund an order whose payment is {current.value}",
                state=current,
                order_id=str(self.id),
            )

        if amount > self.remaining_refundable + MONEY_TOLERANCE:
            raise InvariantViolation(
                f"Refund of {amount:.2f} exceeds the refundable {self.remaining_refundable:.2f}",
                order_id=str(self.id),
                return_request_id=str(return_request_id),
            )

        now = at or datetime.now(UTC)
        self.add_refunds(
            OrderRefund(
                return_request_id=return_request_id,
                refund_id=refund_id,
                amount=amount,
                refunded_at=now,
            )
        )
        self.refunded_total = round((self.refunded_total or 0.0) + amount, 2)
        self.updated_at = now

        fully_refunded = self.remaining_refundable <= MONEY_TOLERANCE
        if fully_refunded:
            self._set_payment_status(PaymentStatus.REFUNDED, now)

        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                return_request_id=str(return_request_id),
                refund_id=refund_id,
                amount=amount,
                refunded_total=self.refunded_total,
                fully_refunded=fully_refunded,
                refunded_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Return claims
    # -------------------------------------------------------------------
    def returnable_quantities(self) -> dict[str, int]:
        """Units per order item id not yet claimed by an open or completed return."""
        remaining = {str(item.id): item.quantity for item in self.items}
        for claim in self.return_claims:
            key = str(claim.order_item_id)
            if key in remaining:
                remaining[key] -= claim.quantity
        return remaining

    def claim_return_quantities(self, return_request_id, quantities, at=None):
        """Book units of order items for one return request.

        Saving the order afterwards is what makes the claim stick: a competing
        claim made from the same order version fails the version check.

        Args:
            quantities: Mapping of order item id to the number of units.
        """
        remaining = self.returnable_quantities()
        for item_id, quantity in quantities.items():
            left = remaining.get(str(item_id))
            if left is None:
                raise ValidationError({"items": [f"Item {item_id} is not part of the order"]})
            if quantity > left:
                raise ValidationError({"quantity": [f"Only {left} unit(s) of item {item_id} can be returned"]})

        self.add_return_claims(
            [
                OrderReturnClaim(return_request_id=return_request_id, order_item_id=item_id, quantity=quantity)
                for item_id, quantity in quantities.items()
            ]
        )
        self.updated_at = at or datetime.now(UTC)

    def release_return_claims(self, return_request_id, at=None) -> bool:
        """Give back the units a rejected return request had claimed."""
        claims = [c for c in self.return_claims if str(c.return_request_id) == str(return_request_id)]
        if not claims:
            return False
        self.remove_return_claims(claims)
        self.updated_at = at or datetime.now(UTC)
        return True

    # -------------------------------------------------------------------
    # Fulfillment axis
    # -------------------------------------------------------------------
    def cancel(self, reason, at=None):
        """Cancel before payment. Captured orders go through returns instead."""
        current = PaymentStatus(self.payment_status)
        if current != PaymentStatus.PENDING:
            raise InvalidState(
                f"Cannot cancel an order whose payment is {current.value}",
                state=current,
                order_id=str(self.id),
            )
        self._assert_can_transition(OrderStatus.CANCELLED)

        now = at or datetime.now(UTC)
        self._set_status(OrderStatus.CANCELLED, now, reason=reason)
        self.cancellation_reason = reason

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                reason=reason,
                cancelled_at=now,
            )
        )

    def mark_packed(self, at=None):
        self._assert_can_transition(OrderStatus.PACKED)
        now = at or datetime.now(UTC)
        self._set_status(OrderStatus.PACKED, now)
        self.raise_(OrderPacked(order_id=str(self.id), packed_at=now))

    def mark_shipped(self, at=None):
        self._assert_can_transition(OrderStatus.SHIPPED)
        now = at or datetime.now(UTC)
        self._set_status(OrderStatus.SHIPPED, now)
        self.shipped_at = now
        self.raise_(OrderShipped(order_id=str(self.id), shipped_at=now))

    def mark_delivered(self, at=None):
        self._assert_can_transition(OrderStatus.DELIVERED)
        now = at or datetime.now(UTC)
        self._set_status(OrderStatus.DELIVERED, now)
        self.delivered_at = now
        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                delivered_at=now,
            )
        )
