"""ReturnWorkflowController: moves return requests from request to refund.

    open_return     order DELIVERED, items inside their window   → PENDING
    approve         label generated on a best-effort basis       → APPROVED
    reject                                                       → REJECTED
    mark_received                                                → RECEIVED
    record_decision / inspect                                    → INSPECTED
    refund          RefundProcessor                              → REFUNDED

A refund is only reachable from INSPECTED and consumes that state, so asking
twice fails with InvalidState.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from commerce.carrier.port import ReturnLabelPort
from commerce.errors import InvalidState, NotFound
from commerce.notifications import dispatch
from commerce.notifications.port import NotifierPort
from commerce.order.order import Order, OrderStatus
from commerce.returns.policy import ReturnPolicy
from commerce.returns.refund import RefundProcessor
from commerce.returns.return_request import ReturnRequest, ReturnStatus

logger = structlog.get_logger(__name__)


class ReturnWorkflowController:
    def __init__(
        self,
        refunds: RefundProcessor,
        policy: ReturnPolicy | None = None,
        labels: ReturnLabelPort | None = None,
        notifier: NotifierPort | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._refunds = refunds
        self._policy = policy or ReturnPolicy()
        self._labels = labels
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(UTC))

    # -------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------
    @staticmethod
    def get(return_id) -> ReturnRequest:
        try:
            return current_domain.repository_for(ReturnRequest).get(str(return_id))
        except ObjectNotFoundError as exc:
            raise NotFound(f"Return request {return_id} not found", return_request_id=return_id) from exc

    @staticmethod
    def _save(return_request: ReturnRequest) -> None:
        current_domain.repository_for(ReturnRequest).add(return_request)

    @staticmethod
    def _order(order_id) -> Order:
        try:
            return current_domain.repository_for(Order).get(str(order_id))
        except ObjectNotFoundError as exc:
            raise NotFound(f"Order {order_id} not found", order_id=order_id) from exc

    # -------------------------------------------------------------------
    # Opening
    # -------------------------------------------------------------------
    def open_return(self, tenant_id, order_id, reason, items, customer_id=None) -> ReturnRequest:
        """Open a return for items of a delivered order.

        The requested units are claimed on the order before the return request
        is stored. Two requests racing for the same units both start from one
        order version, so the slower one fails the version check and answers
        InvalidState.

        Args:
            items: List of dicts with order_item_id and quantity.
        """
        order = self._order(order_id)
        if str(order.tenant_id) != str(tenant_id):
            raise NotFound(f"Order {order_id} not found", order_id=order_id)

        status = OrderStatus(order.status)
        if status != OrderStatus.DELIVERED:
            raise InvalidState(
                f"Only delivered orders can be returned, order is {status.value}",
                state=status,
                order_id=str(order.id),
            )

        now = self._clock()
        claimed: dict[str, int] = {}
        items_data = []
        for requested in items:
            order_item = order.item(requested["order_item_id"])
            if order_item is None:
                raise ValidationError({"items": [f"Item {requested['order_item_id']} is not part of the order"]})

            quantity = requested["quantity"]
            if quantity <= 0:
                raise ValidationError({"quantity": ["Quantity must be positive"]})
            if not self._policy.is_within_window(order, order_item, now):
                raise InvalidState(
                    f"Return window closed for item {order_item.id}",
                    order_id=str(order.id),
                    window_days=self._policy.window_days(order_item.product_id, order_item.category),
                )

            claimed[str(order_item.id)] = claimed.get(str(order_item.id), 0) + quantity
            items_data.append(
                {
                    "order_item_id": order_item.id,
                    "product_id": order_item.product_id,
                    "variant_id": order_item.variant_id,
                    "quantity": quantity,
                    "unit_price": order_item.unit_price,
                }
            )

        return_request = ReturnRequest.open(
            tenant_id=tenant_id,
            order_id=order.id,
            reason=reason,
            items_data=items_data,
            customer_id=customer_id or order.customer_id,
            at=now,
        )
        order.claim_return_quantities(return_request.id, claimed, at=now)
        try:
            with UnitOfWork():
                current_domain.repository_for(Order).add(order)
                self._save(return_request)
        except ExpectedVersionError as exc:
            logger.info("Return claim lost to a concurrent change", order_id=str(order.id))
            raise InvalidState(
                "Order changed while the return was being opened, retry the request",
                order_id=str(order.id),
            ) from exc

        logger.info(
            "Return requested",
            return_request_id=return_request.id,
            order_id=str(order.id),
            items=len(items_data),
        )
        dispatch(
            self._notifier,
            "return.requested",
            str(tenant_id),
            return_request_id=return_request.id,
            order_id=str(order.id),
        )
        return return_request

    # -------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------
    def approve(self, return_id, note=None) -> ReturnRequest:
        return_request = self.get(return_id)
        return_request.approve(note=note, at=self._clock())

        if self._labels is not None:
            try:
                label = self._labels.create_return_label(
                    str(return_request.id), str(return_request.order_id), str(return_request.tenant_id)
                )
                return_request.attach_label(label["label_url"], label.get("tracking_number"))
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Return label generation failed, approval kept",
                    return_request_id=return_request.id,
                    exc_info=True,
                )

        self._save(return_request)
        logger.info("Return approved", return_request_id=return_request.id, label=bool(return_request.label_url))
        dispatch(
            self._notifier,
            "return.approved",
            str(return_request.tenant_id),
            return_request_id=return_request.id,
            label_url=return_request.label_url,
        )
        return return_request

    def reject(self, return_id, reason) -> ReturnRequest:
        return_request = self.get(return_id)
        now = self._clock()
        return_request.reject(reason, at=now)

        order = self._order(return_request.order_id)
        with UnitOfWork():
            if order.release_return_claims(return_request.id, at=now):
                current_domain.repository_for(Order).add(order)
            self._save(return_request)
        logger.info("Return rejected", return_request_id=return_request.id, reason=reason)
        dispatch(
            self._notifier,
            "return.rejected",
            str(return_request.tenant_id),
            return_request_id=return_request.id,
            reason=reason,
        )
        return return_request

    def mark_received(self, return_id) -> ReturnRequest:
        return_request = self.get(return_id)
        return_request.mark_received(at=self._clock())
        self._save(return_request)
        logger.info("Return received", return_request_id=return_request.id)
        return return_request

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------
    def record_decision(self, return_id, item_id, accepted, rejection_reason=None) -> ReturnRequest:
        return_request = self.get(return_id)
        return_request.record_decision(item_id, accepted, rejection_reason=rejection_reason)
        self._save(return_request)
        return return_request

    def inspect(self, return_id, decisions=()) -> ReturnRequest:
        """Record the given decisions and complete inspection in a single write."""
        return_request = self.get(return_id)
        return_request.inspect(list(decisions), at=self._clock())
        self._save(return_request)
        logger.info(
            "Return inspected",
            return_request_id=return_request.id,
            accepted=len(return_request.accepted_items),
            refund_amount=return_request.refund_total,
        )
        return return_request

    # -------------------------------------------------------------------
    # Refund
    # -------------------------------------------------------------------
    def refund(self, return_id) -> ReturnRequest:
        return_request = self.get(return_id)
        current = ReturnStatus(return_request.status)
        if current != ReturnStatus.INSPECTED:
            raise InvalidState(
                f"Only inspected returns can be refunded, return is {current.value}",
                state=current,
                return_request_id=str(return_request.id),
            )

        order = self._order(return_request.order_id)
        try:
            with UnitOfWork():
                outcome = self._refunds.process(return_request, order)
                return_request.complete_refund(outcome.refund_id, outcome.provider, outcome.amount, at=self._clock())
                self._save(return_request)
        except ExpectedVersionError as exc:
            # Another refund of this return saved first
            latest = ReturnStatus(self.get(return_id).status)
            logger.info(
                "Concurrent refund lost the race",
                return_request_id=str(return_request.id),
                status=latest.value,
            )
            raise InvalidState(
                f"Return is already being refunded, return is {latest.value}",
                state=latest,
                return_request_id=str(return_request.id),
            ) from exc

        logger.info(
            "Return refunded",
            return_request_id=return_request.id,
            amount=outcome.amount,
            refund_id=outcome.refund_id,
        )
        dispatch(
            self._notifier,
            "return.refunded",
            str(return_request.tenant_id),
            return_request_id=return_request.id,
            order_id=str(order.id),
            amount=outcome.amount,
        )
        return return_request
