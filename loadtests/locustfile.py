"""Commerce Load Testing: Locust entry point.

Discovers all user classes from the scenarios package.
Run specific scenarios with Locust's class selection.

Usage:
    # All scenarios (web UI):
    locust -f loadtests/locustfile.py

    # Oversell check only:
    locust -f loadtests/locustfile.py LastUnitContentionUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py CheckoutUser ReturnsUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

from locust import events

# Import all user classes so Locust discovers them
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.checkout import CheckoutUser, LastUnitContentionUser  # noqa: F401
from loadtests.scenarios.returns import ReturnsUser  # noqa: F401

logger = logging.getLogger("loadtest")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log error details for every failed request.

    Fires globally for all scenarios. Extracts the API error body so you see
    "stock_unavailable: Item no longer available" instead of just "422".
    """
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400:
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    """Print the failure ratio when the test ends."""
    stats = environment.stats.total
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Requests: {stats.num_requests}, failures: {stats.num_failures}")
    print()
