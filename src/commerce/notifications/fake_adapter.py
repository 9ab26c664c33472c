"""Recording notifier: keeps dispatched notifications in memory for test assertions."""

from commerce.notifications.port import NotifierPort


class NotificationDeliveryFailed(Exception):
    pass


class RecordingNotifier(NotifierPort):
    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        """Make every following notify() call fail, or succeed again."""
        self.should_succeed = should_succeed

    def notify(self, topic: str, tenant_id: str, payload: dict) -> None:
        if not self.should_succeed:
            raise NotificationDeliveryFailed(topic)
        self.sent.append({"topic": topic, "tenant_id": tenant_id, **payload})

    def topics(self) -> list[str]:
        return [n["topic"] for n in self.sent]

    def reset(self):
        """Clear recorded notifications (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
