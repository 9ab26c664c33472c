from structlog.testing import capture_logs

from commerce.notifications import dispatch
from commerce.notifications.fake_adapter import RecordingNotifier
from commerce.notifications.log_adapter import LogNotifier


class TestDispatch:
    def test_records_payload(self, notifier):
        dispatch(notifier, "order.confirmed", "store-001", order_id="ord-1")
        assert notifier.sent == [{"topic": "order.confirmed", "tenant_id": "store-001", "order_id": "ord-1"}]

    def test_delivery_failure_is_swallowed(self, notifier):
        notifier.configure(should_succeed=False)
        dispatch(notifier, "order.confirmed", "store-001", order_id="ord-1")
        assert notifier.sent == []

    def test_no_notifier(self):
        dispatch(None, "order.confirmed", "store-001")

    def test_reset_restores_delivery(self):
        notifier = RecordingNotifier()
        notifier.configure(should_succeed=False)
        notifier.reset()
        dispatch(notifier, "stock.low", "store-001")
        assert notifier.topics() == ["stock.low"]


class TestLogNotifier:
    def test_logs_notification(self):
        with capture_logs() as logs:
            LogNotifier().notify("return.refunded", "store-001", {"amount": 20.0})
        assert logs[0]["topic"] == "return.refunded"
        assert logs[0]["amount"] == 20.0
