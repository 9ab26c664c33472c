"""ReturnRequest aggregate: one customer return against a delivered order.

State Machine:
    PENDING → APPROVED → RECEIVED → INSPECTED → REFUNDED
    PENDING → REJECTED

Inspection decisions are recorded per item while RECEIVED, but the move to
INSPECTED happens in one step that requires every item to be decided, so a
half-inspected return is never mistaken for a finished one.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from commerce.domain import commerce
from commerce.errors import InvalidState, NotFound
from commerce.returns.events import (
    ReturnApproved,
    ReturnInspected,
    ReturnReceived,
    ReturnRefunded,
    ReturnRejected,
    ReturnRequested,
)


class ReturnStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    RECEIVED = "Received"
    INSPECTED = "Inspected"
    REFUNDED = "Refunded"
    REJECTED = "Rejected"


_VALID_TRANSITIONS = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.INSPECTED},
    ReturnStatus.INSPECTED: {ReturnStatus.REFUNDED},
    ReturnStatus.REFUNDED: set(),  # Terminal
    ReturnStatus.REJECTED: set(),  # Terminal
}


@commerce.entity(part_of="ReturnRequest")
class ReturnItem:
    """A returned quantity of one order item.

    ``accepted`` is None until inspection decides it.
    """

    order_item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    accepted = Boolean()
    rejection_reason = String(max_length=500)
    refund_price = Float()

    @property
    def decided(self) -> bool:
        return self.accepted is not None


@commerce.aggregate
class ReturnRequest:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier()
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    reason = String(required=True, max_length=500)
    items = HasMany(ReturnItem)
    notes = Text(default="[]")  # JSON: list of {text, at}
    label_url = String(max_length=500)
    tracking_number = String(max_length=100)
    rejection_reason = String(max_length=500)
    refund_id = String(max_length=255)
    refund_provider = String(max_length=50)
    refund_amount = Float()
    requested_at = DateTime()
    approved_at = DateTime()
    rejected_at = DateTime()
    received_at = DateTime()
    inspected_at = DateTime()
    refunded_at = DateTime()

    @classmethod
    def open(cls, tenant_id, order_id, reason, items_data, customer_id=None, at=None):
        """Create a PENDING return.

        Args:
            items_data: List of dicts with order_item_id, product_id, quantity,
                        unit_price and optionally variant_id. Eligibility is
                        checked by the workflow before this is called.
        """
        if not items_data:
            raise ValidationError({"items": ["A return needs at least one item"]})
        if not reason:
            raise ValidationError({"reason": ["A return reason is required"]})

        now = at or datetime.now(UTC)
        return_request = cls(
            tenant_id=tenant_id,
            order_id=order_id,
            customer_id=customer_id,
            reason=reason,
            status=ReturnStatus.PENDING.value,
            items=[
                ReturnItem(
                    order_item_id=item["order_item_id"],
                    product_id=item["product_id"],
                    variant_id=item.get("variant_id"),
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                )
                for item in items_data
            ],
            requested_at=now,
        )
        return_request.raise_(
            ReturnRequested(
                return_request_id=str(return_request.id),
                tenant_id=str(tenant_id),
                order_id=str(order_id),
                reason=reason,
                items=json.dumps(
                    [{"order_item_id": str(i["order_item_id"]), "quantity": i["quantity"]} for i in items_data]
                ),
                requested_at=now,
            )
        )
        return return_request

    def _assert_can_transition(self, target):
        current = ReturnStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidState(
                f"Cannot transition return from {current.value} to {target.value}",
                state=current,
                return_request_id=str(self.id),
            )

    # -------------------------------------------------------------------
    # Notes and labels
    # -------------------------------------------------------------------
    @property
    def note_list(self) -> list[dict]:
        return json.loads(self.notes) if self.notes else []

    def add_note(self, text, at=None):
        now = at or datetime.now(UTC)
        notes = self.note_list
        notes.append({"text": text, "at": now.isoformat()})
        self.notes = json.dumps(notes)

    def attach_label(self, label_url, tracking_number=None):
        self.label_url = label_url
        self.tracking_number = tracking_number

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def approve(self, note=None, at=None):
        self._assert_can_transition(ReturnStatus.APPROVED)
        now = at or datetime.now(UTC)
        self.status = ReturnStatus.APPROVED.value
        self.approved_at = now
        if note:
            self.add_note(note, at=now)
        self.raise_(ReturnApproved(return_request_id=str(self.id), order_id=str(self.order_id), approved_at=now))

    def reject(self, reason, at=None):
        if not reason:
            raise ValidationError({"reason": ["A rejection reason is required"]})
        self._assert_can_transition(ReturnStatus.REJECTED)
        now = at or datetime.now(UTC)
        self.status = ReturnStatus.REJECTED.value
        self.rejection_reason = reason
        self.rejected_at = now
        self.raise_(
            ReturnRejected(
                return_request_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                rejected_at=now,
            )
        )

    def mark_received(self, at=None):
        self._assert_can_transition(ReturnStatus.RECEIVED)
        now = at or datetime.now(UTC)
        self.status = ReturnStatus.RECEIVED.value
        self.received_at = now
        self.raise_(ReturnReceived(return_request_id=str(self.id), order_id=str(self.order_id), received_at=now))

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------
    def item(self, item_id):
        """Find a return item by its own id or by the order item it returns."""
        for item in self.items:
            if str(item.id) == str(item_id) or str(item.order_item_id) == str(item_id):
                return item
        raise NotFound(f"Item {item_id} is not part of return {self.id}", return_request_id=str(self.id))

    def record_decision(self, item_id, accepted, rejection_reason=None):
        """Accept or reject one item. Decisions can be revised until inspection completes."""
        current = ReturnStatus(self.status)
        if current != ReturnStatus.RECEIVED:
            raise InvalidState(
                f"Cannot inspect items of a return in {current.value}",
                state=current,
                return_request_id=str(self.id),
            )
        if not accepted and not rejection_reason:
            raise ValidationError({"rejection_reason": ["A rejected item needs a reason"]})

        item = self.item(item_id)
        item.accepted = bool(accepted)
        item.rejection_reason = None if accepted else rejection_reason
        item.refund_price = None

    def complete_inspection(self, at=None):
        """Move to INSPECTED once every item is decided, fixing refund prices."""
        self._assert_can_transition(ReturnStatus.INSPECTED)
        undecided = [str(i.id) for i in self.items if not i.decided]
        if undecided:
            raise InvalidState(
                f"{len(undecided)} item(s) still awaiting a decision",
                state=ReturnStatus(self.status),
                return_request_id=str(self.id),
            )

        for item in self.items:
            # Always the price paid, never the current catalogue price
            item.refund_price = round(item.quantity * item.unit_price, 2) if item.accepted else 0.0

        now = at or datetime.now(UTC)
        self.status = ReturnStatus.INSPECTED.value
        self.inspected_at = now
        accepted = self.accepted_items
        self.raise_(
            ReturnInspected(
                return_request_id=str(self.id),
                order_id=str(self.order_id),
                accepted_count=len(accepted),
                rejected_count=len(self.items) - len(accepted),
                refund_amount=self.refund_total,
                inspected_at=now,
            )
        )

    def inspect(self, decisions, at=None):
        """Apply all decisions and complete the inspection in one step.

        Args:
            decisions: List of dicts with item_id, accepted and, for rejected
                       items, rejection_reason.
        """
        for decision in decisions:
            self.record_decision(
                decision["item_id"],
                decision["accepted"],
                rejection_reason=decision.get("rejection_reason"),
            )
        self.complete_inspection(at=at)

    @property
    def accepted_items(self) -> list[ReturnItem]:
        return [i for i in self.items if i.accepted]

    @property
    def refund_total(self) -> float:
        return round(sum(i.refund_price or 0.0 for i in self.accepted_items), 2)

    # -------------------------------------------------------------------
    # Refund
    # -------------------------------------------------------------------
    def complete_refund(self, refund_id, provider, amount, at=None):
        self._assert_can_transition(ReturnStatus.REFUNDED)
        now = at or datetime.now(UTC)
        self.status = ReturnStatus.REFUNDED.value
        self.refund_id = refund_id
        self.refund_provider = provider
        self.refund_amount = amount
        self.refunded_at = now
        self.raise_(
            ReturnRefunded(
                return_request_id=str(self.id),
                tenant_id=str(self.tenant_id),
                order_id=str(self.order_id),
                refund_id=refund_id,
                refund_provider=provider,
                refund_amount=amount,
                refunded_at=now,
            )
        )
