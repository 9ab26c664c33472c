"""SQLAlchemy inventory store.

One database transaction per unit of work (``engine.begin()``), rolled back on
any exception. The stock decrement and the reservation state change are
conditional UPDATEs whose row count tells whether the guard held, so two
concurrent transactions can never both take the last unit or both move the
same reservation out of HELD.
"""

import threading
from contextlib import contextmanager, nullcontext
from datetime import UTC

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.pool import StaticPool

from commerce.inventory.store.port import (
    InventoryStore,
    InventoryTransaction,
    MovementType,
    Reservation,
    ReservationLine,
    ReservationState,
    StockKey,
    StockLevel,
    StockMovement,
)

metadata = MetaData()

# variant_id is stored as "" for products without variants so the key columns
# can form a primary key.
stock_levels = Table(
    "stock_levels",
    metadata,
    Column("tenant_id", String(64), primary_key=True),
    Column("product_id", String(64), primary_key=True),
    Column("variant_id", String(64), primary_key=True, default=""),
    Column("stock", Integer, nullable=False),
    Column("reorder_point", Integer, nullable=False, default=5),
)

stock_movements = Table(
    "stock_movements",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", String(64), nullable=False, index=True),
    Column("product_id", String(64), nullable=False, index=True),
    Column("variant_id", String(64), nullable=False, default=""),
    Column("movement_type", String(20), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("previous_stock", Integer, nullable=False),
    Column("new_stock", Integer, nullable=False),
    Column("reference", String(255)),
    Column("recorded_at", DateTime(timezone=True), nullable=False),
)

reservations = Table(
    "inventory_reservations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("tenant_id", String(64), nullable=False, index=True),
    Column("order_id", String(64), nullable=False, index=True),
    Column("state", String(20), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True)),
    Column("resolved_at", DateTime(timezone=True)),
)

reservation_lines = Table(
    "inventory_reservation_lines",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reservation_id", String(64), ForeignKey("inventory_reservations.id"), nullable=False, index=True),
    Column("product_id", String(64), nullable=False),
    Column("variant_id", String(64), nullable=False, default=""),
    Column("quantity", Integer, nullable=False),
)

applied_operations = Table(
    "applied_operations",
    metadata,
    Column("operation_key", String(255), primary_key=True),
)


def _variant(value):
    return value or ""


def _aware(value):
    # SQLite drops the offset on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _key_clause(key: StockKey):
    return and_(
        stock_levels.c.tenant_id == key.tenant_id,
        stock_levels.c.product_id == key.product_id,
        stock_levels.c.variant_id == _variant(key.variant_id),
    )


class SqlTransaction(InventoryTransaction):
    def __init__(self, connection) -> None:
        self._conn = connection

    def get_stock(self, key):
        row = self._conn.execute(
            select(stock_levels.c.stock, stock_levels.c.reorder_point).where(_key_clause(key))
        ).first()
        if row is None:
            return None
        return StockLevel(key=key, stock=row.stock, reorder_point=row.reorder_point)

    def put_stock(self, level):
        result = self._conn.execute(
            update(stock_levels)
            .where(_key_clause(level.key))
            .values(stock=level.stock, reorder_point=level.reorder_point)
        )
        if result.rowcount == 0:
            self._conn.execute(
                insert(stock_levels).values(
                    tenant_id=level.key.tenant_id,
                    product_id=level.key.product_id,
                    variant_id=_variant(level.key.variant_id),
                    stock=level.stock,
                    reorder_point=level.reorder_point,
                )
            )

    def decrement_if_available(self, key, quantity):
        result = self._conn.execute(
            update(stock_levels)
            .where(and_(_key_clause(key), stock_levels.c.stock >= quantity))
            .values(stock=stock_levels.c.stock - quantity)
        )
        if result.rowcount != 1:
            return None
        # The row is write-locked by this transaction from here on
        return self._conn.execute(select(stock_levels.c.stock).where(_key_clause(key))).scalar_one()

    def increment(self, key, quantity):
        result = self._conn.execute(
            update(stock_levels).where(_key_clause(key)).values(stock=stock_levels.c.stock + quantity)
        )
        if result.rowcount != 1:
            return None
        return self._conn.execute(select(stock_levels.c.stock).where(_key_clause(key))).scalar_one()

    def record_movement(self, movement):
        self._conn.execute(
            insert(stock_movements).values(
                tenant_id=movement.key.tenant_id,
                product_id=movement.key.product_id,
                variant_id=_variant(movement.key.variant_id),
                movement_type=movement.movement_type.value,
                quantity=movement.quantity,
                previous_stock=movement.previous_stock,
                new_stock=movement.new_stock,
                reference=movement.reference,
                recorded_at=movement.recorded_at,
            )
        )

    def movements(self, key):
        rows = self._conn.execute(
            select(stock_movements)
            .where(
                and_(
                    stock_movements.c.tenant_id == key.tenant_id,
                    stock_movements.c.product_id == key.product_id,
                    stock_movements.c.variant_id == _variant(key.variant_id),
                )
            )
            .order_by(stock_movements.c.id)
        ).all()
        return [
            StockMovement(
                key=key,
                movement_type=MovementType(row.movement_type),
                quantity=row.quantity,
                previous_stock=row.previous_stock,
                new_stock=row.new_stock,
                reference=row.reference,
                recorded_at=_aware(row.recorded_at),
            )
            for row in rows
        ]

    def insert_reservation(self, reservation):
        self._conn.execute(
            insert(reservations).values(
                id=reservation.id,
                tenant_id=reservation.tenant_id,
                order_id=reservation.order_id,
                state=reservation.state.value,
                created_at=reservation.created_at,
                expires_at=reservation.expires_at,
                resolved_at=reservation.resolved_at,
            )
        )
        if reservation.lines:
            self._conn.execute(
                insert(reservation_lines),
                [
                    {
                        "reservation_id": reservation.id,
                        "product_id": line.product_id,
                        "variant_id": _variant(line.variant_id),
                        "quantity": line.quantity,
                    }
                    for line in reservation.lines
                ],
            )

    def _load(self, row) -> Reservation:
        lines = self._conn.execute(
            select(reservation_lines)
            .where(reservation_lines.c.reservation_id == row.id)
            .order_by(reservation_lines.c.id)
        ).all()
        return Reservation(
            id=row.id,
            tenant_id=row.tenant_id,
            order_id=row.order_id,
            state=ReservationState(row.state),
            created_at=_aware(row.created_at),
            expires_at=_aware(row.expires_at),
            resolved_at=_aware(row.resolved_at),
            lines=tuple(
                ReservationLine(
                    product_id=line.product_id,
                    variant_id=line.variant_id or None,
                    quantity=line.quantity,
                )
                for line in lines
            ),
        )

    def get_reservation(self, reservation_id):
        row = self._conn.execute(select(reservations).where(reservations.c.id == reservation_id)).first()
        return self._load(row) if row is not None else None

    def transition_reservation(self, reservation_id, expected, new, at):
        result = self._conn.execute(
            update(reservations)
            .where(and_(reservations.c.id == reservation_id, reservations.c.state == expected.value))
            .values(state=new.value, resolved_at=at)
        )
        return result.rowcount == 1

    def held_reservations_expiring_before(self, cutoff):
        rows = self._conn.execute(
            select(reservations)
            .where(
                and_(
                    reservations.c.state == ReservationState.HELD.value,
                    reservations.c.expires_at.is_not(None),
                    reservations.c.expires_at <= cutoff,
                )
            )
            .order_by(reservations.c.expires_at)
        ).all()
        return [self._load(row) for row in rows]

    def mark_applied(self, operation_key):
        existing = self._conn.execute(
            select(applied_operations.c.operation_key).where(applied_operations.c.operation_key == operation_key)
        ).first()
        if existing is not None:
            return False
        # A concurrent insert of the same key fails on the primary key and
        # rolls back the whole unit of work; the retry then sees the marker.
        self._conn.execute(insert(applied_operations).values(operation_key=operation_key))
        return True


IN_MEMORY_URIS = ("sqlite://", "sqlite:///:memory:")


class SqlInventoryStore(InventoryStore):
    """Inventory store on a SQLAlchemy engine.

    An in-memory SQLite database lives on a single connection, so every unit
    of work on it is serialized. That only suits tests: it must be asked for
    with ``single_connection=True`` and is refused otherwise.
    """

    def __init__(self, database_uri: str | None = None, engine=None, single_connection: bool = False) -> None:
        self._serialized = None
        if engine is None:
            if database_uri is None:
                raise ValueError("A database URI or an engine is required")
            if database_uri in IN_MEMORY_URIS:
                if not single_connection:
                    raise ValueError(
                        f"{database_uri} keeps the whole database on one connection; "
                        "use a file or server database, or pass single_connection=True in tests"
                    )
                engine = create_engine(
                    database_uri,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
                self._serialized = threading.RLock()
            else:
                engine = create_engine(database_uri)
        self.engine = engine

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        metadata.drop_all(self.engine)

    @contextmanager
    def transaction(self):
        with self._serialized or nullcontext(), self.engine.begin() as connection:
            yield SqlTransaction(connection)
