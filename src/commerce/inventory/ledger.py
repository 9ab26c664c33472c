"""StockLedger: the only component allowed to change stock.

Every operation takes the caller's unit of work (an ``InventoryTransaction``)
so a stock change commits or rolls back together with whatever state
transition caused it. Callers open the unit of work with
``ledger.transaction()``.

Stock Model:
    stock:          physical units sellable right now, never negative
    reorder_point:  at or below this level a low-stock alert is raised
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from commerce.errors import InsufficientStock, NotFound
from commerce.inventory.store.port import (
    InventoryStore,
    InventoryTransaction,
    MovementType,
    StockKey,
    StockLevel,
    StockMovement,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockChange:
    """Outcome of a single ledger mutation."""

    key: StockKey
    previous_stock: int
    new_stock: int
    reorder_point: int

    @property
    def crossed_reorder_point(self) -> bool:
        return self.previous_stock > self.reorder_point >= self.new_stock


class StockLedger:
    def __init__(self, store: InventoryStore, clock: Callable[[], datetime] | None = None) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    def transaction(self):
        """Open a unit of work on the underlying store."""
        return self._store.transaction()

    # -------------------------------------------------------------------
    # Mutations (inside the caller's transaction)
    # -------------------------------------------------------------------
    def deduct(
        self, tx: InventoryTransaction, key: StockKey, quantity: int, reference: str | None = None
    ) -> StockChange:
        """Take ``quantity`` units out of stock, or raise InsufficientStock untouched."""
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        new_stock = tx.decrement_if_available(key, quantity)
        if new_stock is None:
            level = tx.get_stock(key)
            available = level.stock if level else 0
            logger.info(
                "Stock deduction refused",
                key=str(key),
                requested=quantity,
                available=available,
                reference=reference,
            )
            raise InsufficientStock(
                f"Insufficient stock for {key}: {available} available, {quantity} requested",
                requested=quantity,
                available=available,
                product_id=key.product_id,
            )

        change = self._record(tx, key, MovementType.SALE, -quantity, new_stock, reference)
        if change.crossed_reorder_point:
            logger.warning(
                "Low stock detected",
                key=str(key),
                stock=change.new_stock,
                reorder_point=change.reorder_point,
            )
        return change

    def restore(
        self, tx: InventoryTransaction, key: StockKey, quantity: int, reference: str | None = None
    ) -> StockChange:
        """Put ``quantity`` units back into stock. Unconditional and additive."""
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        new_stock = tx.increment(key, quantity)
        if new_stock is None:
            raise NotFound(f"No stock record for {key}", product_id=key.product_id)

        return self._record(tx, key, MovementType.RETURN, quantity, new_stock, reference)

    def _record(self, tx, key, movement_type, quantity, new_stock, reference) -> StockChange:
        previous_stock = new_stock - quantity
        level = tx.get_stock(key)
        tx.record_movement(
            StockMovement(
                key=key,
                movement_type=movement_type,
                quantity=quantity,
                previous_stock=previous_stock,
                new_stock=new_stock,
                reference=reference,
                recorded_at=self._clock(),
            )
        )
        return StockChange(
            key=key,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reorder_point=level.reorder_point if level else 0,
        )

    # -------------------------------------------------------------------
    # Manual stock management (own transaction)
    # -------------------------------------------------------------------
    def initialize(self, key: StockKey, quantity: int, reorder_point: int = 5) -> StockLevel:
        """Create or reset the stock record for a unit."""
        if quantity < 0:
            raise ValueError("Stock cannot be negative")

        with self.transaction() as tx:
            previous = tx.get_stock(key)
            level = StockLevel(key=key, stock=quantity, reorder_point=reorder_point)
            tx.put_stock(level)
            tx.record_movement(
                StockMovement(
                    key=key,
                    movement_type=MovementType.INITIAL if previous is None else MovementType.ADJUSTMENT,
                    quantity=quantity - (previous.stock if previous else 0),
                    previous_stock=previous.stock if previous else 0,
                    new_stock=quantity,
                    reference=None,
                    recorded_at=self._clock(),
                )
            )

        logger.info("Stock initialized", key=str(key), stock=quantity, reorder_point=reorder_point)
        return level

    def restock(self, key: StockKey, quantity: int, reference: str | None = None) -> StockChange:
        """Receive ``quantity`` new units from a supplier."""
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        with self.transaction() as tx:
            new_stock = tx.increment(key, quantity)
            if new_stock is None:
                raise NotFound(f"No stock record for {key}", product_id=key.product_id)
            change = self._record(tx, key, MovementType.RESTOCK, quantity, new_stock, reference)

        logger.info("Stock received", key=str(key), quantity=quantity, stock=change.new_stock)
        return change

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def level(self, key: StockKey) -> StockLevel | None:
        with self.transaction() as tx:
            return tx.get_stock(key)

    def available(self, key: StockKey) -> int:
        level = self.level(key)
        return level.stock if level else 0

    def movements(self, key: StockKey) -> list[StockMovement]:
        with self.transaction() as tx:
            return tx.movements(key)
