"""Runtime settings for the Commerce services.

Protean picks its own configuration overlay from ``PROTEAN_ENV``; the values
below cover what the fulfillment workflow itself needs.
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    return_window_days: int = 30
    reservation_ttl_minutes: int = 15
    inventory_store: str = "memory"  # memory | sql
    database_uri: str = "sqlite:///commerce.db"
    webhook_secret: str = "test-signature"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            environment=env.get("PROTEAN_ENV", "development"),
            return_window_days=int(env.get("COMMERCE_RETURN_WINDOW_DAYS", "30")),
            reservation_ttl_minutes=int(env.get("COMMERCE_RESERVATION_TTL_MINUTES", "15")),
            inventory_store=env.get("COMMERCE_INVENTORY_STORE", "memory"),
            database_uri=env.get("COMMERCE_DATABASE_URI", "sqlite:///commerce.db"),
            webhook_secret=env.get("COMMERCE_WEBHOOK_SECRET", "test-signature"),
        )
