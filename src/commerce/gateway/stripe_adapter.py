"""Stripe payment gateway adapter (stripe-python SDK).

Refunds are issued with ``stripe.Refund.create`` against the PaymentIntent
the order was paid with. The return request id travels as Stripe's
idempotency key, so a retried refund answers with the refund Stripe issued
the first time.

Webhooks are checked with ``stripe.Webhook.construct_event`` over the raw
request body and the ``Stripe-Signature`` header.
"""

import stripe
import structlog

from commerce.gateway.port import PaymentGateway, RefundResult

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300

# Refund states in which Stripe has taken the refund on
ACCEPTED_REFUND_STATUSES = ("succeeded", "pending")


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = DEFAULT_TOLERANCE_SECONDS) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                payment_intent=gateway_transaction_id,
                amount=to_minor_units(amount),
                reason="requested_by_customer",
                metadata={"return_request_id": idempotency_key, "return_reason": reason or ""},
                idempotency_key=f"refund-{idempotency_key}",
                api_key=self.api_key,
            )
        except (stripe.CardError, stripe.InvalidRequestError) as exc:
            logger.warning(
                "Stripe refused the refund",
                payment_intent=gateway_transaction_id,
                code=exc.code,
                idempotency_key=idempotency_key,
            )
            return RefundResult(
                success=False,
                gateway_status=exc.code or "refused",
                failure_reason=exc.user_message or str(exc),
            )

        if refund.status not in ACCEPTED_REFUND_STATUSES:
            return RefundResult(
                success=False,
                gateway_refund_id=refund.id,
                gateway_status=refund.status,
                failure_reason=f"Stripe refund {refund.id} is {refund.status}",
            )
        return RefundResult(success=True, gateway_refund_id=refund.id, gateway_status=refund.status)

    def verify_webhook_signature(self, payload: bytes | str, signature: str) -> bool:
        if not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret, tolerance=self.tolerance)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("Stripe webhook rejected", reason=str(exc))
            return False
        return True
