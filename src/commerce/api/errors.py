"""Map workflow errors to HTTP responses.

FastAPI picks the handler of the closest class in the exception's MRO, so
``AlreadyProcessed`` answers 409 while other ``InvalidState`` errors answer 400.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from commerce.errors import (
    AlreadyProcessed,
    FulfillmentError,
    InsufficientStock,
    InvalidState,
    InvariantViolation,
    NotFound,
    ProviderFailure,
    StockUnavailable,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    NotFound: 404,
    InvalidState: 400,
    AlreadyProcessed: 409,
    StockUnavailable: 422,
    InsufficientStock: 422,
    ProviderFailure: 502,
    InvariantViolation: 500,
    FulfillmentError: 400,
}


def status_for(exc: FulfillmentError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 400


async def _fulfillment_error(request: Request, exc: FulfillmentError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.code, message=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(status_code=400, content={"error": "validation_error", "messages": exc.messages})


async def _object_not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(status_code=404, content={"error": "not_found", "message": str(exc)})


async def _version_conflict(request: Request, exc: ExpectedVersionError) -> JSONResponse:
    logger.warning("Concurrent write conflict", path=request.url.path, detail=str(exc))
    return JSONResponse(
        status_code=409,
        content={"error": "conflict", "message": "The resource was changed concurrently, retry the request"},
    )


def register_error_handlers(app: FastAPI) -> None:
    for exc_class in STATUS_CODES:
        app.add_exception_handler(exc_class, _fulfillment_error)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _object_not_found)
    app.add_exception_handler(ExpectedVersionError, _version_conflict)
