"""Payment gateway construction.

Gateways are built once from settings and handed to the services that need
them (see ``commerce.services.build_services``):
- FakeGateway for development and testing
- StripeGateway for production, on the stripe-python SDK
"""

import os

from commerce.config import Settings
from commerce.gateway.fake_adapter import FakeGateway
from commerce.gateway.port import PaymentGateway


def build_gateway(settings: Settings) -> PaymentGateway:
    """Return the gateway for the configured environment. Defaults to FakeGateway."""
    if settings.is_production:
        from commerce.gateway.stripe_adapter import StripeGateway

        return StripeGateway(
            api_key=os.environ.get("STRIPE_API_KEY", ""),
            webhook_secret=settings.webhook_secret,
        )
    return FakeGateway(webhook_secret=settings.webhook_secret)
