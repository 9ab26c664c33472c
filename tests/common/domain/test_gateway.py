"""Tests for the payment gateway adapters."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from commerce.config import Settings
from commerce.gateway import build_gateway
from commerce.gateway.fake_adapter import FakeGateway
from commerce.gateway.port import RefundResult
from commerce.gateway.stripe_adapter import StripeGateway, to_minor_units


def _stripe_header(payload: str, secret: str, timestamp: int) -> str:
    """A ``Stripe-Signature`` header signed the way Stripe signs webhooks."""
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestFakeGateway:
    def test_default_refund_succeeds(self):
        gateway = FakeGateway()
        result = gateway.create_refund(
            gateway_transaction_id="pi_123",
            amount=30.00,
            reason="Defective",
            idempotency_key="ret-1",
        )
        assert isinstance(result, RefundResult)
        assert result.success is True
        assert result.gateway_refund_id is not None

    def test_configured_refund_fails(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Refund limit exceeded")
        result = gateway.create_refund(
            gateway_transaction_id="pi_123",
            amount=30.00,
            reason="Test",
            idempotency_key="ret-1",
        )
        assert result.success is False
        assert result.failure_reason == "Refund limit exceeded"

    def test_idempotency_key_replays_first_refund(self):
        gateway = FakeGateway()
        first = gateway.create_refund("pi_123", 30.0, "Defective", idempotency_key="ret-1")
        second = gateway.create_refund("pi_123", 30.0, "Defective", idempotency_key="ret-1")
        assert second.gateway_refund_id == first.gateway_refund_id
        assert gateway.refunds_issued() == 1
        assert len(gateway.calls) == 2

    def test_failed_refund_can_be_retried_with_same_key(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False)
        gateway.create_refund("pi_123", 30.0, "Defective", idempotency_key="ret-1")
        gateway.configure(should_succeed=True)
        assert gateway.create_refund("pi_123", 30.0, "Defective", idempotency_key="ret-1").success is True

    def test_webhook_signature_verification(self):
        gateway = FakeGateway(webhook_secret="whsec")
        assert gateway.verify_webhook_signature(b"{}", "whsec") is True
        assert gateway.verify_webhook_signature(b"{}", "forged") is False


class TestStripeRefunds:
    @pytest.fixture()
    def gateway(self):
        return StripeGateway(api_key="sk_test_123", webhook_secret="whsec_test")

    @pytest.fixture()
    def refund_calls(self, monkeypatch):
        calls = []

        def _create(**params):
            calls.append(params)
            return SimpleNamespace(id="re_001", status="succeeded")

        monkeypatch.setattr(stripe.Refund, "create", _create)
        return calls

    def test_refund_is_issued_against_the_payment_intent(self, gateway, refund_calls):
        result = gateway.create_refund("pi_123", 19.99, "Did not fit", idempotency_key="ret-1")

        assert result == RefundResult(success=True, gateway_refund_id="re_001", gateway_status="succeeded")
        params = refund_calls[0]
        assert params["payment_intent"] == "pi_123"
        assert params["amount"] == 1999
        assert params["api_key"] == "sk_test_123"
        assert params["metadata"]["return_request_id"] == "ret-1"

    def test_return_id_is_the_idempotency_key(self, gateway, refund_calls):
        gateway.create_refund("pi_123", 10.0, "Defective", idempotency_key="ret-1")
        gateway.create_refund("pi_123", 10.0, "Defective", idempotency_key="ret-1")

        assert {call["idempotency_key"] for call in refund_calls} == {"refund-ret-1"}

    def test_refused_refund_is_reported_not_raised(self, gateway, monkeypatch):
        def _refuse(**params):
            raise stripe.InvalidRequestError(
                "Charge pi_123 has already been refunded.", "payment_intent", code="charge_already_refunded"
            )

        monkeypatch.setattr(stripe.Refund, "create", _refuse)

        result = gateway.create_refund("pi_123", 10.0, "Defective", idempotency_key="ret-1")

        assert result.success is False
        assert result.gateway_status == "charge_already_refunded"
        assert "already been refunded" in result.failure_reason

    def test_failed_refund_status_is_a_failure(self, gateway, monkeypatch):
        monkeypatch.setattr(
            stripe.Refund,
            "create",
            lambda **params: SimpleNamespace(id="re_002", status="failed"),
        )

        result = gateway.create_refund("pi_123", 10.0, "Defective", idempotency_key="ret-1")

        assert result.success is False
        assert result.gateway_refund_id == "re_002"
        assert result.gateway_status == "failed"

    def test_connection_errors_propagate(self, gateway, monkeypatch):
        def _offline(**params):
            raise stripe.APIConnectionError("Network down")

        monkeypatch.setattr(stripe.Refund, "create", _offline)

        with pytest.raises(stripe.APIConnectionError):
            gateway.create_refund("pi_123", 10.0, "Defective", idempotency_key="ret-1")

    @pytest.mark.parametrize("amount, cents", [(10.0, 1000), (19.99, 1999), (0.1 + 0.2, 30)])
    def test_amounts_are_sent_in_cents(self, amount, cents):
        assert to_minor_units(amount) == cents


class TestStripeWebhooks:
    PAYLOAD = json.dumps({"id": "evt_1", "object": "event", "type": "payment_intent.succeeded"})

    @pytest.fixture()
    def gateway(self):
        return StripeGateway(api_key="sk_test_123", webhook_secret="whsec_test")

    def test_accepts_signed_raw_body(self, gateway):
        header = _stripe_header(self.PAYLOAD, "whsec_test", int(time.time()) - 10)
        assert gateway.verify_webhook_signature(self.PAYLOAD.encode(), header) is True

    def test_rejects_reserialized_body(self, gateway):
        header = _stripe_header(self.PAYLOAD, "whsec_test", int(time.time()))
        reserialized = json.dumps(json.loads(self.PAYLOAD), separators=(",", ":"))
        assert gateway.verify_webhook_signature(reserialized.encode(), header) is False

    def test_rejects_other_secret(self, gateway):
        header = _stripe_header(self.PAYLOAD, "whsec_other", int(time.time()))
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is False

    def test_rejects_stale_timestamp(self, gateway):
        header = _stripe_header(self.PAYLOAD, "whsec_test", int(time.time()) - 301)
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is False

    @pytest.mark.parametrize("header", ["", "v1=abc", "t=notanumber,v1=abc", "t=1767000000"])
    def test_rejects_malformed_header(self, gateway, header):
        assert gateway.verify_webhook_signature(self.PAYLOAD, header) is False


class TestBuildGateway:
    def test_fake_outside_production(self):
        gateway = build_gateway(Settings(environment="test", webhook_secret="whsec"))
        assert isinstance(gateway, FakeGateway)
        assert gateway.webhook_secret == "whsec"

    def test_stripe_in_production(self, monkeypatch):
        monkeypatch.setenv("STRIPE_API_KEY", "sk_live_123")

        gateway = build_gateway(Settings(environment="production", webhook_secret="whsec_live"))

        assert isinstance(gateway, StripeGateway)
        assert gateway.api_key == "sk_live_123"
        assert gateway.webhook_secret == "whsec_live"
