"""OrderLifecycleController: drives orders through placement, payment and fulfillment.

The controller owns both status axes of the Order aggregate and is the only
caller of the ReservationManager on the ordering side:

    place_order        → reserve (intent only, stock untouched)
    payment succeeded  → confirm (stock deducted) → PROCESSING
    payment failed     → release → CANCELLED
    cancel             → release → CANCELLED
    pack/ship/deliver  → status only

Payment providers retry webhook delivery, so payment handlers report a
``WebhookOutcome`` instead of raising for replays and out-of-order events.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from commerce.errors import AlreadyProcessed, InvalidState, NotFound, StockUnavailable
from commerce.inventory.ledger import StockLedger
from commerce.inventory.reservation import ReleaseReason, ReservationManager
from commerce.inventory.store.port import ReservationState, StockKey
from commerce.notifications import dispatch
from commerce.notifications.port import NotifierPort
from commerce.order.order import Order, OrderStatus, PaymentStatus
from commerce.order.webhook import PaymentEvent, PaymentFailed, PaymentSucceeded

logger = structlog.get_logger(__name__)

# Times a payment event is applied before a version conflict is given up on
CONFLICT_ATTEMPTS = 3


class WebhookOutcome(Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    STOCK_UNAVAILABLE = "stock_unavailable"
    IGNORED = "ignored"


class OrderLifecycleController:
    def __init__(
        self,
        ledger: StockLedger,
        reservations: ReservationManager,
        notifier: NotifierPort | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ledger = ledger
        self._reservations = reservations
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(UTC))

    # -------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------
    @staticmethod
    def get(order_id) -> Order:
        try:
            return current_domain.repository_for(Order).get(str(order_id))
        except ObjectNotFoundError as exc:
            raise NotFound(f"Order {order_id} not found", order_id=order_id) from exc

    @staticmethod
    def _save(order: Order) -> None:
        current_domain.repository_for(Order).add(order)

    # -------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------
    def place_order(self, tenant_id, customer_id, items, pricing=None, ttl=None) -> Order:
        """Create a PENDING order and hold a reservation for its items.

        The availability check here is advisory: it rejects carts that cannot
        possibly be fulfilled, but only the conditional decrement at
        confirmation guarantees the stock.
        """
        self._check_availability(tenant_id, items)

        now = self._clock()
        order = Order.place(
            tenant_id=tenant_id,
            customer_id=customer_id,
            items_data=items,
            pricing=pricing,
            placed_at=now,
        )
        reservation = self._reservations.reserve(tenant_id, order.id, order.reservation_lines(), ttl=ttl)
        order.attach_reservation(reservation.id)
        self._save(order)

        logger.info(
            "Order placed",
            order_id=order.id,
            tenant_id=str(tenant_id),
            reservation_id=reservation.id,
            grand_total=order.grand_total,
        )
        return order

    def _check_availability(self, tenant_id, items) -> None:
        wanted: dict[StockKey, int] = {}
        for item in items:
            variant_id = item.get("variant_id")
            key = StockKey(str(tenant_id), str(item["product_id"]), str(variant_id) if variant_id else None)
            wanted[key] = wanted.get(key, 0) + item["quantity"]

        for key, quantity in wanted.items():
            available = self._ledger.available(key)
            if available < quantity:
                logger.info("Order rejected, insufficient stock", key=str(key), requested=quantity, available=available)
                raise StockUnavailable(product_id=key.product_id, requested=quantity, available=available)

    # -------------------------------------------------------------------
    # Payment webhooks
    # -------------------------------------------------------------------
    def handle_payment_event(self, event: PaymentEvent) -> WebhookOutcome:
        if isinstance(event, PaymentSucceeded):
            return self.payment_succeeded(event.order_id, event.payment_id)
        if isinstance(event, PaymentFailed):
            return self.payment_failed(event.order_id, event.reason, payment_id=event.payment_id)

        logger.info("Unhandled payment event ignored", event_id=event.event_id, event_type=event.event_type)
        return WebhookOutcome.IGNORED

    def payment_succeeded(self, order_id, payment_id: str) -> WebhookOutcome:
        return self._on_latest_order(order_id, self._apply_payment_success, payment_id)

    def payment_failed(self, order_id, reason: str, payment_id: str | None = None) -> WebhookOutcome:
        return self._on_latest_order(order_id, self._apply_payment_failure, reason, payment_id)

    def _on_latest_order(self, order_id, apply, *args) -> WebhookOutcome:
        """Apply a payment event to the latest version of the order.

        When a concurrent delivery saves the order first, the event is applied
        again to the reloaded order. It then sees what the other delivery did
        and settles as DUPLICATE or STALE instead of failing. Each attempt
        writes in its own unit of work, so a lost attempt leaves nothing behind.
        """
        attempt = 1
        while True:
            order = self.get(order_id)
            try:
                with UnitOfWork():
                    return apply(order, *args)
            except ExpectedVersionError:
                if attempt >= CONFLICT_ATTEMPTS:
                    raise
                logger.info(
                    "Order changed concurrently, reapplying payment event",
                    order_id=str(order.id),
                    attempt=attempt,
                )
                attempt += 1

    def _apply_payment_success(self, order: Order, payment_id: str) -> WebhookOutcome:
        payment_status = PaymentStatus(order.payment_status)

        if payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            logger.info("Duplicate payment success ignored", order_id=order.id, payment_id=payment_id)
            return WebhookOutcome.DUPLICATE

        if payment_status == PaymentStatus.FAILED:
            # Money was captured for an order we already gave up on
            logger.warning(
                "Payment succeeded after failure",
                order_id=order.id,
                payment_id=payment_id,
                status=order.status,
            )
            if not order.requires_attention:
                order.flag_for_review("Payment captured after the order was cancelled", at=self._clock())
                self._save(order)
            return WebhookOutcome.STALE

        if not order.reservation_id:
            raise InvalidState("Order has no reservation to confirm", order_id=order.id)

        try:
            self._reservations.confirm(order.reservation_id)
        except AlreadyProcessed as exc:
            if exc.state != ReservationState.CONFIRMED:
                return self._fail_after_capture(order, payment_id, f"Reservation already {exc.state.value.lower()}")
            # Stock was deducted by an earlier delivery that did not finish
            logger.info("Reservation already confirmed", order_id=order.id, reservation_id=order.reservation_id)
        except StockUnavailable:
            return self._fail_after_capture(order, payment_id, "Item no longer available")

        order.record_payment_success(payment_id, at=self._clock())
        self._save(order)

        logger.info("Payment applied", order_id=order.id, payment_id=payment_id)
        dispatch(
            self._notifier,
            "order.confirmed",
            str(order.tenant_id),
            order_id=order.id,
            customer_id=str(order.customer_id),
            grand_total=order.grand_total,
        )
        return WebhookOutcome.APPLIED

    def _fail_after_capture(self, order: Order, payment_id: str, reason: str) -> WebhookOutcome:
        order.fail_after_capture(payment_id, reason, at=self._clock())
        self._save(order)

        logger.warning(
            "Payment captured but stock unavailable, order flagged for refund",
            order_id=order.id,
            payment_id=payment_id,
            reason=reason,
        )
        dispatch(
            self._notifier,
            "order.requires_attention",
            str(order.tenant_id),
            order_id=order.id,
            payment_id=payment_id,
            reason=reason,
        )
        return WebhookOutcome.STOCK_UNAVAILABLE

    def _apply_payment_failure(self, order: Order, reason: str, payment_id: str | None) -> WebhookOutcome:
        payment_status = PaymentStatus(order.payment_status)

        if payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            logger.warning(
                "Stale payment failure rejected",
                order_id=order.id,
                payment_id=payment_id,
                payment_status=payment_status.value,
            )
            return WebhookOutcome.STALE

        if payment_status == PaymentStatus.FAILED:
            logger.info("Duplicate payment failure ignored", order_id=order.id)
            return WebhookOutcome.DUPLICATE

        if order.reservation_id:
            try:
                self._reservations.release(order.reservation_id, reason=ReleaseReason.PAYMENT_FAILED)
            except AlreadyProcessed as exc:
                if exc.state == ReservationState.CONFIRMED:
                    logger.warning(
                        "Payment failure for a confirmed reservation rejected",
                        order_id=order.id,
                        reservation_id=order.reservation_id,
                    )
                    return WebhookOutcome.STALE

        was_cancelled = OrderStatus(order.status) == OrderStatus.CANCELLED
        order.record_payment_failure(reason, at=self._clock())
        self._save(order)

        logger.info("Payment failure applied", order_id=order.id, reason=reason)
        if not was_cancelled:
            dispatch(self._notifier, "order.cancelled", str(order.tenant_id), order_id=order.id, reason=reason)
        return WebhookOutcome.APPLIED

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, order_id, reason: str) -> Order:
        """Cancel an order whose payment has not been captured."""
        order = self.get(order_id)
        order.cancel(reason, at=self._clock())

        if order.reservation_id:
            try:
                self._reservations.release(order.reservation_id, reason=ReleaseReason.CANCELLED)
            except AlreadyProcessed as exc:
                if exc.state == ReservationState.CONFIRMED:
                    raise InvalidState(
                        "Cannot cancel an order whose stock is already committed",
                        state=exc.state,
                        order_id=order.id,
                    ) from exc

        self._save(order)
        logger.info("Order cancelled", order_id=order.id, reason=reason)
        dispatch(self._notifier, "order.cancelled", str(order.tenant_id), order_id=order.id, reason=reason)
        return order

    def sweep_expired(self, as_of: datetime | None = None) -> list[str]:
        """Expire stale reservations and cancel the orders still waiting on them.

        Returns the ids of the cancelled orders.
        """
        cancelled = []
        for reservation in self._reservations.release_expired(as_of):
            try:
                order = self.get(reservation.order_id)
            except NotFound:
                logger.warning("Expired reservation has no order", reservation_id=reservation.id)
                continue
            waiting = OrderStatus(order.status) == OrderStatus.PENDING
            unpaid = PaymentStatus(order.payment_status) == PaymentStatus.PENDING
            if not (waiting and unpaid):
                continue
            order.cancel("Reservation expired", at=self._clock())
            self._save(order)
            cancelled.append(order.id)
            dispatch(
                self._notifier,
                "order.cancelled",
                str(order.tenant_id),
                order_id=order.id,
                reason="Reservation expired",
            )

        if cancelled:
            logger.info("Orders cancelled after reservation expiry", count=len(cancelled))
        return cancelled

    # -------------------------------------------------------------------
    # Fulfillment progression
    # -------------------------------------------------------------------
    def mark_packed(self, order_id) -> Order:
        order = self.get(order_id)
        order.mark_packed(at=self._clock())
        self._save(order)
        logger.info("Order packed", order_id=order.id)
        return order

    def mark_shipped(self, order_id) -> Order:
        order = self.get(order_id)
        order.mark_shipped(at=self._clock())
        self._save(order)
        logger.info("Order shipped", order_id=order.id)
        return order

    def mark_delivered(self, order_id) -> Order:
        order = self.get(order_id)
        order.mark_delivered(at=self._clock())
        self._save(order)
        logger.info("Order delivered", order_id=order.id)
        dispatch(self._notifier, "order.delivered", str(order.tenant_id), order_id=order.id)
        return order
