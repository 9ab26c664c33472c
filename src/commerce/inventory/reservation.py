"""ReservationManager: records, confirms and releases inventory reservations.

A reservation records intent only: which units will be taken and from where.
Stock is deducted when the reservation is confirmed (after payment succeeds),
never at reservation time, so abandoned or failed payments never touch stock.

Reservation lifecycle:
    HELD → CONFIRMED   (stock deducted, one transaction)
    HELD → RELEASED    (cancellation or payment failure, no stock change)
    HELD → EXPIRED     (expiry sweep, same path as release)

Each reservation leaves HELD exactly once. The exit is a compare-and-set on
the stored state, so a late webhook retry racing a cancellation cannot apply
both.
"""

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import uuid4

import structlog

from commerce.errors import AlreadyProcessed, InsufficientStock, NotFound, StockUnavailable
from commerce.inventory.ledger import StockChange, StockLedger
from commerce.inventory.store.port import Reservation, ReservationLine, ReservationState
from commerce.notifications import dispatch
from commerce.notifications.port import NotifierPort

logger = structlog.get_logger(__name__)


class ReleaseReason(Enum):
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"
    EXPIRED = "expired"


class ReservationManager:
    def __init__(
        self,
        ledger: StockLedger,
        notifier: NotifierPort | None = None,
        default_ttl: timedelta | None = timedelta(minutes=15),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ledger = ledger
        self._notifier = notifier
        self._default_ttl = default_ttl
        self._clock = clock or (lambda: datetime.now(UTC))

    # -------------------------------------------------------------------
    # Reserve
    # -------------------------------------------------------------------
    def reserve(
        self,
        tenant_id: str,
        order_id: str,
        items: Iterable[dict | ReservationLine],
        ttl: timedelta | None = None,
    ) -> Reservation:
        """Record what will be deducted for ``order_id``.

        Args:
            items: ReservationLine objects or dicts with product_id, quantity
                   and an optional variant_id. Lines for the same unit are merged.
        """
        lines = _merge_lines(items)
        if not lines:
            raise ValueError("A reservation needs at least one line")

        now = self._clock()
        ttl = ttl if ttl is not None else self._default_ttl
        reservation = Reservation(
            id=str(uuid4()),
            tenant_id=str(tenant_id),
            order_id=str(order_id),
            state=ReservationState.HELD,
            created_at=now,
            expires_at=now + ttl if ttl else None,
            lines=lines,
        )
        with self._ledger.transaction() as tx:
            tx.insert_reservation(reservation)

        logger.info(
            "Reservation held",
            reservation_id=reservation.id,
            tenant_id=reservation.tenant_id,
            order_id=reservation.order_id,
            lines=len(lines),
            expires_at=reservation.expires_at.isoformat() if reservation.expires_at else None,
        )
        return reservation

    # -------------------------------------------------------------------
    # Confirm
    # -------------------------------------------------------------------
    def confirm(self, reservation_id: str) -> Reservation:
        """Deduct every line and mark the reservation CONFIRMED, atomically.

        Raises:
            NotFound: unknown reservation.
            AlreadyProcessed: the reservation already left HELD; ``state``
                tells which way.
            StockUnavailable: a line could not be deducted; nothing changed.
        """
        reservation_id = str(reservation_id)
        changes: list[StockChange] = []
        try:
            with self._ledger.transaction() as tx:
                reservation = self._load(tx, reservation_id)
                now = self._clock()
                confirmed = tx.transition_reservation(
                    reservation_id, ReservationState.HELD, ReservationState.CONFIRMED, now
                )
                if not confirmed:
                    raise self._already_processed(tx, reservation_id)

                for line in reservation.lines:
                    key = reservation.key_for(line)
                    changes.append(self._ledger.deduct(tx, key, line.quantity, reference=reservation.order_id))
        except InsufficientStock as exc:
            logger.info(
                "Reservation confirm failed, stock unavailable",
                reservation_id=reservation_id,
                product_id=exc.context.get("product_id"),
                requested=exc.requested,
                available=exc.available,
            )
            raise StockUnavailable(
                "Item no longer available",
                reservation_id=reservation_id,
                product_id=exc.context.get("product_id"),
            ) from exc

        logger.info("Reservation confirmed", reservation_id=reservation_id, order_id=reservation.order_id)
        for change in changes:
            if change.crossed_reorder_point:
                dispatch(
                    self._notifier,
                    "stock.low",
                    reservation.tenant_id,
                    product_id=change.key.product_id,
                    variant_id=change.key.variant_id,
                    stock=change.new_stock,
                    reorder_point=change.reorder_point,
                )
        return replace(reservation, state=ReservationState.CONFIRMED, resolved_at=now)

    # -------------------------------------------------------------------
    # Release / expire
    # -------------------------------------------------------------------
    def release(self, reservation_id: str, reason: ReleaseReason = ReleaseReason.CANCELLED) -> Reservation:
        """Leave HELD without touching stock.

        The expiry sweep goes through here too, ending in EXPIRED instead of
        RELEASED.
        """
        reservation_id = str(reservation_id)
        target = ReservationState.EXPIRED if reason == ReleaseReason.EXPIRED else ReservationState.RELEASED
        with self._ledger.transaction() as tx:
            reservation = self._load(tx, reservation_id)
            now = self._clock()
            if not tx.transition_reservation(reservation_id, ReservationState.HELD, target, now):
                raise self._already_processed(tx, reservation_id)

        logger.info(
            "Reservation released",
            reservation_id=reservation_id,
            order_id=reservation.order_id,
            reason=reason.value,
            state=target.value,
        )
        return replace(reservation, state=target, resolved_at=now)

    def expire(self, reservation_id: str) -> Reservation:
        return self.release(reservation_id, reason=ReleaseReason.EXPIRED)

    def release_expired(self, as_of: datetime | None = None) -> list[Reservation]:
        """Expire every HELD reservation whose expiry is at or before ``as_of``.

        Meant to be triggered by an external scheduler. A reservation confirmed
        or released between the scan and the release is skipped.
        """
        as_of = as_of or self._clock()
        with self._ledger.transaction() as tx:
            stale = tx.held_reservations_expiring_before(as_of)

        if not stale:
            logger.info("No stale reservations found", as_of=as_of.isoformat())
            return []

        expired = []
        for reservation in stale:
            try:
                expired.append(self.expire(reservation.id))
            except AlreadyProcessed as exc:
                logger.info(
                    "Stale reservation already resolved",
                    reservation_id=reservation.id,
                    state=exc.state.value if exc.state else None,
                )

        logger.info("Stale reservation cleanup complete", expired_count=len(expired))
        return expired

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get(self, reservation_id: str) -> Reservation:
        with self._ledger.transaction() as tx:
            return self._load(tx, reservation_id)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _load(tx, reservation_id: str) -> Reservation:
        reservation = tx.get_reservation(str(reservation_id))
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
        return reservation

    @staticmethod
    def _already_processed(tx, reservation_id: str) -> AlreadyProcessed:
        current = tx.get_reservation(str(reservation_id))
        state = current.state if current else None
        return AlreadyProcessed(
            f"Reservation {reservation_id} is already {state.value if state else 'gone'}",
            state=state,
            reservation_id=reservation_id,
        )


def _merge_lines(items) -> tuple[ReservationLine, ...]:
    quantities: dict[tuple[str, str | None], int] = {}
    for item in items:
        if isinstance(item, ReservationLine):
            product_id, variant_id, quantity = item.product_id, item.variant_id, item.quantity
        else:
            product_id, variant_id, quantity = item["product_id"], item.get("variant_id"), item["quantity"]
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive for product {product_id}")
        key = (str(product_id), str(variant_id) if variant_id else None)
        quantities[key] = quantities.get(key, 0) + int(quantity)
    return tuple(
        ReservationLine(product_id=product_id, variant_id=variant_id, quantity=quantity)
        for (product_id, variant_id), quantity in quantities.items()
    )

