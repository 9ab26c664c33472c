"""What the refund flow and the payment webhook need from a payment provider."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RefundResult:
    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    name: str = "unknown"

    @abstractmethod
    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund part or all of the charge ``gateway_transaction_id``.

        A repeated call with the same ``idempotency_key`` answers with the refund
        issued the first time instead of moving money again.
        """

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes | str, signature: str) -> bool:
        """True when ``signature`` proves the raw request body ``payload`` came from the provider."""
