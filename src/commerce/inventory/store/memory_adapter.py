"""In-memory inventory store for development and testing.

All transactions are serialized by one re-entrant lock. Writes are staged on
the transaction and copied into the shared tables only on commit, so an
exception inside the ``with`` block leaves the store untouched.
"""

import threading
from contextlib import contextmanager
from dataclasses import replace

from commerce.inventory.store.port import (
    InventoryStore,
    InventoryTransaction,
    Reservation,
    ReservationState,
    StockKey,
    StockLevel,
    StockMovement,
)


class MemoryTransaction(InventoryTransaction):
    def __init__(self, store: "MemoryInventoryStore") -> None:
        self._store = store
        self._stock: dict[StockKey, StockLevel] = {}
        self._reservations: dict[str, Reservation] = {}
        self._movements: list[StockMovement] = []
        self._markers: set[str] = set()

    # Reads see this transaction's staged writes first
    def get_stock(self, key):
        if key in self._stock:
            return self._stock[key]
        return self._store._stock.get(key)

    def put_stock(self, level):
        self._stock[level.key] = level

    def decrement_if_available(self, key, quantity):
        level = self.get_stock(key)
        if level is None or level.stock < quantity:
            return None
        self._stock[key] = replace(level, stock=level.stock - quantity)
        return level.stock - quantity

    def increment(self, key, quantity):
        level = self.get_stock(key)
        if level is None:
            return None
        self._stock[key] = replace(level, stock=level.stock + quantity)
        return level.stock + quantity

    def record_movement(self, movement):
        self._movements.append(movement)

    def movements(self, key):
        committed = [m for m in self._store._movements if m.key == key]
        return committed + [m for m in self._movements if m.key == key]

    def insert_reservation(self, reservation):
        self._reservations[reservation.id] = reservation

    def get_reservation(self, reservation_id):
        if reservation_id in self._reservations:
            return self._reservations[reservation_id]
        return self._store._reservations.get(reservation_id)

    def transition_reservation(self, reservation_id, expected, new, at):
        reservation = self.get_reservation(reservation_id)
        if reservation is None or reservation.state != expected:
            return False
        self._reservations[reservation_id] = replace(reservation, state=new, resolved_at=at)
        return True

    def held_reservations_expiring_before(self, cutoff):
        merged = {**self._store._reservations, **self._reservations}
        return sorted(
            (
                r
                for r in merged.values()
                if r.state == ReservationState.HELD and r.expires_at is not None and r.expires_at <= cutoff
            ),
            key=lambda r: r.expires_at,
        )

    def mark_applied(self, operation_key):
        if operation_key in self._markers or operation_key in self._store._markers:
            return False
        self._markers.add(operation_key)
        return True

    def _commit(self) -> None:
        self._store._stock.update(self._stock)
        self._store._reservations.update(self._reservations)
        self._store._movements.extend(self._movements)
        self._store._markers.update(self._markers)


class MemoryInventoryStore(InventoryStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._stock: dict[StockKey, StockLevel] = {}
        self._reservations: dict[str, Reservation] = {}
        self._movements: list[StockMovement] = []
        self._markers: set[str] = set()

    @contextmanager
    def transaction(self):
        with self._lock:
            tx = MemoryTransaction(self)
            yield tx
            # Reached only when the block did not raise
            tx._commit()

    def reset(self) -> None:
        """Drop all data (test helper)."""
        with self._lock:
            self._stock.clear()
            self._reservations.clear()
            self._movements.clear()
            self._markers.clear()
