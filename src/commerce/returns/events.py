"""Domain events for the ReturnRequest aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from commerce.domain import commerce


@commerce.event(part_of="ReturnRequest")
class ReturnRequested:
    __version__ = 1

    return_request_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    items = Text(required=True)  # JSON: list of {order_item_id, quantity}
    requested_at = DateTime(required=True)


@commerce.event(part_of="ReturnRequest")
class ReturnApproved:
    __version__ = 1

    return_request_id = Identifier(required=True)
    order_id = Identifier(required=True)
    approved_at = DateTime(required=True)


@commerce.event(part_of="ReturnRequest")
class ReturnRejected:
    __version__ = 1

    return_request_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@commerce.event(part_of="ReturnRequest")
class ReturnReceived:
    __version__ = 1

    return_request_id = Identifier(required=True)
    order_id = Identifier(required=True)
    received_at = DateTime(required=True)


@commerce.event(part_of="ReturnRequest")
class ReturnInspected:
    """Every item has a decision; refund prices are fixed from purchase prices."""

    __version__ = 1

    return_request_id = Identifier(required=True)
    order_id = Identifier(required=True)
    accepted_count = Integer(required=True)
    rejected_count = Integer(required=True)
    refund_amount = Float(required=True)
    inspected_at = DateTime(required=True)


@commerce.event(part_of="ReturnRequest")
class ReturnRefunded:
    __version__ = 1

    return_request_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refund_id = String()
    refund_provider = String()
    refund_amount = Float(required=True)
    refunded_at = DateTime(required=True)
