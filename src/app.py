"""Commerce FastAPI application.

Processes checkout, payment webhook and return requests synchronously via HTTP.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the Protean config overlay and the gateway adapter.
from commerce.api.app import create_app
from commerce.domain import commerce
from commerce.utils.logging import configure_logging

configure_logging()
commerce.init()

app = create_app()
