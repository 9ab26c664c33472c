"""Error taxonomy shared by the inventory, ordering and returns modules.

Each error maps to one HTTP status at the API boundary (see
``commerce.api.errors``). Aggregates keep raising protean's
``ValidationError`` for field-level problems; these classes describe
workflow outcomes.
"""


class FulfillmentError(Exception):
    """Base class for all workflow errors."""

    code = "fulfillment_error"

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **{k: str(v) for k, v in self.context.items()}}


class NotFound(FulfillmentError):
    """The referenced entity does not exist. Not retried."""

    code = "not_found"


class InvalidState(FulfillmentError):
    """The entity is not in the state the operation requires."""

    code = "invalid_state"

    def __init__(self, message: str, state=None, **context) -> None:
        super().__init__(message, **context)
        self.state = state

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.state is not None:
            body["state"] = getattr(self.state, "value", str(self.state))
        return body


class AlreadyProcessed(InvalidState):
    """A reservation was already confirmed, released or expired.

    ``state`` carries the terminal state so callers can tell a harmless
    replay (already CONFIRMED after a confirm) from a real conflict.
    """

    code = "already_processed"


class InsufficientStock(FulfillmentError):
    """A conditional decrement found less stock than requested. Nothing was mutated."""

    code = "insufficient_stock"

    def __init__(self, message: str, requested: int = 0, available: int | None = None, **context) -> None:
        super().__init__(message, **context)
        self.requested = requested
        self.available = available


class StockUnavailable(FulfillmentError):
    """Stock could not be secured for an order. Business-expected under contention."""

    code = "stock_unavailable"

    def __init__(self, message: str = "Item no longer available", **context) -> None:
        super().__init__(message, **context)


class ProviderFailure(FulfillmentError):
    """An external provider call failed. State is left unchanged so a retry is safe."""

    code = "provider_failure"


class InvariantViolation(FulfillmentError):
    """A core invariant would be broken. Reported, never silently corrected."""

    code = "invariant_violation"
