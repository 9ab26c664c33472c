"""Return label port: abstract interface for carrier label generation.

Label generation is best-effort: approval of a return never waits on it and
never fails because of it.
"""

from abc import ABC, abstractmethod


class ReturnLabelPort(ABC):
    """Abstract interface for return label adapters."""

    @abstractmethod
    def create_return_label(self, return_request_id: str, order_id: str, tenant_id: str) -> dict:
        """Create a prepaid return shipping label.

        Returns:
            dict with keys: label_url, tracking_number
        """
        ...
