"""Payment webhook payloads, parsed into a closed set of event variants.

Providers send a JSON envelope shaped like::

    {
        "id": "evt_123",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_123", "metadata": {"order_id": "..."}}}
    }

Anything that is not a recognised success or failure becomes an
``UnknownPaymentEvent``, which the lifecycle controller logs and ignores.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

SUCCEEDED_TYPES = frozenset({"payment_intent.succeeded", "payment.succeeded"})
FAILED_TYPES = frozenset({"payment_intent.payment_failed", "payment.failed"})


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str | None
    order_id: str
    payment_id: str


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str | None
    order_id: str
    payment_id: str | None
    reason: str


@dataclass(frozen=True)
class UnknownPaymentEvent:
    event_id: str | None
    event_type: str | None


PaymentEvent = PaymentSucceeded | PaymentFailed | UnknownPaymentEvent


def parse_payment_event(payload: dict) -> PaymentEvent:
    """Turn a provider webhook payload into one of the known variants.

    Raises:
        ValidationError: a success or failure event without an order id.
    """
    event_id = payload.get("id")
    event_type = payload.get("type")
    obj = (payload.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    if event_type not in SUCCEEDED_TYPES and event_type not in FAILED_TYPES:
        return UnknownPaymentEvent(event_id=event_id, event_type=event_type)

    order_id = metadata.get("order_id") or metadata.get("orderId")
    if not order_id:
        raise ValidationError({"metadata": ["order_id is required"]})

    if event_type in SUCCEEDED_TYPES:
        if not obj.get("id"):
            raise ValidationError({"object": ["payment id is required"]})
        return PaymentSucceeded(event_id=event_id, order_id=str(order_id), payment_id=obj["id"])

    error = obj.get("last_payment_error") or {}
    return PaymentFailed(
        event_id=event_id,
        order_id=str(order_id),
        payment_id=obj.get("id"),
        reason=error.get("message") or "Payment failed",
    )
