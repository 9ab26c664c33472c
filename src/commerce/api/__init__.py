"""Commerce HTTP API package."""

from commerce.api.routes import inventory_router, maintenance_router, order_router, return_router

__all__ = ["inventory_router", "maintenance_router", "order_router", "return_router"]
