"""Notifier port: fire-and-forget dispatch of workflow notifications.

The core emits a notification after terminal transitions (order confirmed,
cancelled, delivered; return approved, refunded) and on low stock. Rendering
and delivery belong to the adapter.
"""

from abc import ABC, abstractmethod


class NotifierPort(ABC):
    """Abstract interface for notification dispatch adapters."""

    @abstractmethod
    def notify(self, topic: str, tenant_id: str, payload: dict) -> None:
        """Dispatch a notification. Must not raise for delivery problems."""
        ...
