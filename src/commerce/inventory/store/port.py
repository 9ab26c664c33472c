"""Inventory store port (abstract interface).

The store is the storage layer behind the StockLedger and the
ReservationManager. Every mutation happens inside a transaction obtained from
``InventoryStore.transaction()``; the transaction commits when the ``with``
block exits normally and rolls back on any exception, so a reservation state
change and the stock changes it implies are applied together or not at all.

Two operations carry the concurrency guarantees:

- ``decrement_if_available`` is a single compare-and-decrement, never a
  read followed by a write.
- ``transition_reservation`` is a compare-and-set on the reservation state.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ReservationState(Enum):
    HELD = "Held"
    CONFIRMED = "Confirmed"
    RELEASED = "Released"
    EXPIRED = "Expired"


class MovementType(Enum):
    INITIAL = "initial"
    RESTOCK = "restock"
    SALE = "sale"
    RETURN = "return"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class StockKey:
    """Identifies one sellable unit of one tenant."""

    tenant_id: str
    product_id: str
    variant_id: str | None = None

    def __str__(self) -> str:
        suffix = f"/{self.variant_id}" if self.variant_id else ""
        return f"{self.tenant_id}:{self.product_id}{suffix}"


@dataclass(frozen=True)
class StockLevel:
    key: StockKey
    stock: int
    reorder_point: int = 5

    @property
    def is_low(self) -> bool:
        return self.stock <= self.reorder_point


@dataclass(frozen=True)
class StockMovement:
    key: StockKey
    movement_type: MovementType
    quantity: int  # positive in, negative out
    previous_stock: int
    new_stock: int
    reference: str | None
    recorded_at: datetime


@dataclass(frozen=True)
class ReservationLine:
    product_id: str
    quantity: int
    variant_id: str | None = None


@dataclass(frozen=True)
class Reservation:
    id: str
    tenant_id: str
    order_id: str
    state: ReservationState
    created_at: datetime
    lines: tuple[ReservationLine, ...] = field(default_factory=tuple)
    expires_at: datetime | None = None
    resolved_at: datetime | None = None

    def key_for(self, line: ReservationLine) -> StockKey:
        return StockKey(self.tenant_id, line.product_id, line.variant_id)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class InventoryTransaction(ABC):
    """Unit of work handed to the StockLedger and the ReservationManager."""

    # -------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------
    @abstractmethod
    def get_stock(self, key: StockKey) -> StockLevel | None:
        """Return the current stock row, or None if the unit is unknown."""
        ...

    @abstractmethod
    def put_stock(self, level: StockLevel) -> None:
        """Create or overwrite a stock row (initialization and manual restock)."""
        ...

    @abstractmethod
    def decrement_if_available(self, key: StockKey, quantity: int) -> int | None:
        """Decrement stock by ``quantity`` only if stock >= quantity.

        Returns the new stock on success, None if the condition failed or the
        unit is unknown. A failed condition mutates nothing.
        """
        ...

    @abstractmethod
    def increment(self, key: StockKey, quantity: int) -> int | None:
        """Add ``quantity`` to stock. Returns the new stock, None if the unit is unknown."""
        ...

    @abstractmethod
    def record_movement(self, movement: StockMovement) -> None: ...

    @abstractmethod
    def movements(self, key: StockKey) -> list[StockMovement]: ...

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    @abstractmethod
    def insert_reservation(self, reservation: Reservation) -> None: ...

    @abstractmethod
    def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    @abstractmethod
    def transition_reservation(
        self,
        reservation_id: str,
        expected: ReservationState,
        new: ReservationState,
        at: datetime,
    ) -> bool:
        """Move a reservation from ``expected`` to ``new``.

        Returns False, without mutating, when the current state is not
        ``expected``.
        """
        ...

    @abstractmethod
    def held_reservations_expiring_before(self, cutoff: datetime) -> list[Reservation]: ...

    # -------------------------------------------------------------------
    # Idempotency markers
    # -------------------------------------------------------------------
    @abstractmethod
    def mark_applied(self, operation_key: str) -> bool:
        """Record that a one-shot operation ran. False if it was already recorded."""
        ...


class InventoryStore(ABC):
    """Factory for inventory transactions."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[InventoryTransaction]:
        """Open a unit of work. Commits on normal exit, rolls back on exception."""
        ...
