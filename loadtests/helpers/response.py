"""Response error extraction for load test observability.

Parses Commerce API error responses into human-readable messages.
Handles these response shapes:

- Pydantic validation (422): {"detail": [{"loc": [...], "msg": "...", "type": "..."}]}
- HTTPException (401/404): {"detail": "msg"}
- Workflow errors: {"error": "code", "message": "msg", ...}
- Domain validation (400): {"error": "validation_error", "messages": {"field": ["msg"]}}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    """
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    detail = body.get("detail")
    if isinstance(detail, list):
        parts = []
        for err in detail:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)
    if isinstance(detail, str):
        return detail

    if "messages" in body:
        return " | ".join(f"{k}: {', '.join(map(str, v))}" for k, v in body["messages"].items())

    if "error" in body:
        message = body.get("message")
        return f"{body['error']}: {message}" if message else str(body["error"])

    return str(body)[:300]


def error_code(response: Response) -> str | None:
    """The ``error`` code of a workflow error body, if any."""
    try:
        return response.json().get("error")
    except ValueError:
        return None
