"""Notifier that writes every notification to the structured log.

Used outside tests until a delivery channel is wired in.
"""

import structlog

from commerce.notifications.port import NotifierPort

logger = structlog.get_logger(__name__)


class LogNotifier(NotifierPort):
    def notify(self, topic: str, tenant_id: str, payload: dict) -> None:
        logger.info("Notification", topic=topic, tenant_id=tenant_id, **payload)
