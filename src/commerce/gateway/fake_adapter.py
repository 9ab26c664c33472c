"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment gateway without any external calls.
It can be configured at runtime to succeed or fail, and it honours
idempotency keys the way real providers do: replaying a refund request
returns the refund issued the first time.
"""

from uuid import uuid4

from commerce.gateway.port import PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self, webhook_secret: str = "test-signature") -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.webhook_secret = webhook_secret
        self.calls: list[dict] = []
        self._refunds_by_key: dict[str, RefundResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        call = {
            "method": "create_refund",
            "gateway_transaction_id": gateway_transaction_id,
            "amount": amount,
            "reason": reason,
            "idempotency_key": idempotency_key,
        }
        self.calls.append(call)

        if idempotency_key in self._refunds_by_key:
            return self._refunds_by_key[idempotency_key]

        if not self.should_succeed:
            return RefundResult(
                success=False,
                gateway_status="failed",
                failure_reason=self.failure_reason,
            )

        result = RefundResult(
            success=True,
            gateway_refund_id=f"fake_ref_{uuid4().hex[:12]}",
            gateway_status="succeeded",
        )
        self._refunds_by_key[idempotency_key] = result
        return result

    def refunds_issued(self) -> int:
        """Number of distinct refunds actually issued."""
        return len(self._refunds_by_key)

    def verify_webhook_signature(self, payload: bytes | str, signature: str) -> bool:  # noqa: ARG002
        return signature == self.webhook_secret
