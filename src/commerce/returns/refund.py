"""RefundProcessor: turns an inspected return into money and stock.

Order of effects matters:

1. Refund amount = sum of refund prices of accepted items.
2. Cap check against what is still refundable on the order; a breach is an
   invariant violation, reported and never clamped.
3. Provider refund, keyed by the return id so a retry cannot pay twice.
4. Only after the provider confirmed: restore accepted quantities, once.
5. Book the refund on the order.

Every step is safe to repeat, so a retry after a partial failure converges
to the same end state.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from commerce.errors import InvariantViolation, ProviderFailure
from commerce.gateway.port import PaymentGateway
from commerce.inventory.ledger import StockLedger
from commerce.inventory.store.port import StockKey
from commerce.notifications import dispatch
from commerce.notifications.port import NotifierPort
from commerce.order.order import MONEY_TOLERANCE, Order
from commerce.returns.return_request import ReturnRequest

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RefundOutcome:
    amount: float
    refund_id: str | None = None
    provider: str | None = None
    restored: tuple[tuple[StockKey, int], ...] = field(default_factory=tuple)


class RefundProcessor:
    def __init__(
        self,
        ledger: StockLedger,
        gateway: PaymentGateway,
        notifier: NotifierPort | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ledger = ledger
        self._gateway = gateway
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(UTC))

    def process(self, return_request: ReturnRequest, order: Order) -> RefundOutcome:
        return_id = str(return_request.id)
        amount = return_request.refund_total
        # A retry must not count its own earlier booking against the cap
        refundable = round(order.remaining_refundable + order.refund_booked_for(return_id), 2)

        if amount > refundable + MONEY_TOLERANCE:
            logger.error(
                "Refund exceeds refundable amount",
                return_request_id=return_id,
                order_id=str(order.id),
                amount=amount,
                grand_total=order.grand_total,
                refunded_total=order.refunded_total,
            )
            dispatch(
                self._notifier,
                "refund.invariant_violation",
                str(order.tenant_id),
                return_request_id=return_id,
                order_id=str(order.id),
                amount=amount,
                refundable=refundable,
            )
            raise InvariantViolation(
                f"Refund of {amount:.2f} exceeds the refundable {refundable:.2f}",
                return_request_id=return_id,
                order_id=str(order.id),
            )

        refund_id = provider = None
        if amount > 0:
            refund_id = self._issue_refund(return_request, order, amount)
            provider = self._gateway.name
        else:
            logger.info("Nothing accepted, provider refund skipped", return_request_id=return_id)

        restored = self._restore_stock(return_request)

        if amount > 0:
            order.record_refund(return_id, refund_id, amount, at=self._clock())
            current_domain.repository_for(Order).add(order)

        logger.info(
            "Refund processed",
            return_request_id=return_id,
            order_id=str(order.id),
            amount=amount,
            refund_id=refund_id,
            restored_lines=len(restored),
        )
        return RefundOutcome(amount=amount, refund_id=refund_id, provider=provider, restored=restored)

    def _issue_refund(self, return_request: ReturnRequest, order: Order, amount: float) -> str:
        return_id = str(return_request.id)
        try:
            result = self._gateway.create_refund(
                gateway_transaction_id=order.payment_id,
                amount=amount,
                reason=return_request.reason,
                idempotency_key=return_id,
            )
        except Exception as exc:
            logger.warning("Refund provider call raised", return_request_id=return_id, error=str(exc))
            raise ProviderFailure(f"Refund provider error: {exc}", return_request_id=return_id) from exc

        if not result.success:
            logger.warning(
                "Refund declined by provider",
                return_request_id=return_id,
                gateway_status=result.gateway_status,
                reason=result.failure_reason,
            )
            raise ProviderFailure(
                result.failure_reason or "Refund declined",
                return_request_id=return_id,
            )
        return result.gateway_refund_id

    def _restore_stock(self, return_request: ReturnRequest) -> tuple[tuple[StockKey, int], ...]:
        return_id = str(return_request.id)
        restored = []
        with self._ledger.transaction() as tx:
            if not tx.mark_applied(f"refund:{return_id}"):
                logger.info("Stock already restored for return", return_request_id=return_id)
                return ()
            for item in return_request.accepted_items:
                key = StockKey(
                    str(return_request.tenant_id),
                    str(item.product_id),
                    str(item.variant_id) if item.variant_id else None,
                )
                self._ledger.restore(tx, key, item.quantity, reference=return_id)
                restored.append((key, item.quantity))
        return tuple(restored)
