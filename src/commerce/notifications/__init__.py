"""Notification dispatch helpers."""

import structlog

from commerce.notifications.port import NotifierPort

logger = structlog.get_logger(__name__)


def dispatch(notifier: NotifierPort | None, topic: str, tenant_id: str, **payload) -> None:
    """Send a notification without letting a delivery failure reach the caller."""
    if notifier is None:
        return
    try:
        notifier.notify(topic, tenant_id, payload)
    except Exception:  # noqa: BLE001
        logger.warning("Notification dispatch failed", topic=topic, tenant_id=tenant_id, exc_info=True)
