"""Fake label printer: deterministic return labels for testing and development."""

from uuid import uuid4

from commerce.carrier.port import ReturnLabelPort


class CarrierUnavailable(Exception):
    pass


class FakeLabelPrinter(ReturnLabelPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.labels: list[dict] = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "Carrier unavailable"):
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_return_label(self, return_request_id: str, order_id: str, tenant_id: str) -> dict:
        if not self.should_succeed:
            raise CarrierUnavailable(self.failure_reason)

        tracking_number = f"FAKE-RET-{uuid4().hex[:10].upper()}"
        label = {
            "label_url": f"https://fake-carrier.example.com/returns/{return_request_id}.pdf",
            "tracking_number": tracking_number,
        }
        self.labels.append(
            {"return_request_id": return_request_id, "order_id": order_id, "tenant_id": tenant_id, **label}
        )
        return label
