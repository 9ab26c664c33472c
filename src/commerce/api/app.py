"""FastAPI application factory.

The factory takes a ready ``Services`` container so tests can hand in one
wired with fakes. Every request runs inside the commerce domain context.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commerce.api.errors import register_error_handlers
from commerce.api.routes import inventory_router, maintenance_router, order_router, return_router
from commerce.domain import commerce
from commerce.services import Services, build_services
from commerce.utils.logging import add_context, clear_context


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(
        title="Commerce API",
        description="Inventory-safe order fulfillment and returns",
    )
    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the Protean domain context and request log context for each request."""
        add_context(method=request.method, path=request.url.path)
        try:
            with commerce.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        return response

    register_error_handlers(app)
    app.include_router(inventory_router)
    app.include_router(maintenance_router)
    app.include_router(order_router)
    app.include_router(return_router)

    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "domain": commerce.name,
                "environment": app.state.services.settings.environment,
            }
        )

    return app
