"""Translate scheduling failures into JSON error responses.

Every body carries ``error`` (the machine-readable code), ``message`` and
``path``. Failures a client can simply try again (lock contention, a store
outage) also carry a ``Retry-After`` header.
"""

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_scheduler.core.exceptions import (
    AppException,
    ContentionException,
    StorageFailureException,
)

logger = structlog.get_logger(__name__)

RETRY_AFTER_SECONDS = 1
TRANSIENT_ERRORS = (ContentionException, StorageFailureException)


def _error_body(request: Request, error: str, message: object) -> dict:
    return {"error": error, "message": message, "path": str(request.url)}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render a scheduling failure under its class name.

    Codes by status:
        404: NotFoundException
        403: ForbiddenException
        409: SlotConflictException (doctor already booked), InvalidTransitionException,
            AlreadyTerminalException, OfferExpiredException, NotRemovableException,
            ContentionException (retries exhausted or lock wait timed out)
        422: InvalidIntervalException, InvalidRangeException, ValidationException
        503: StorageFailureException

    Contention and storage failures are logged and answered with Retry-After;
    the rest are expected outcomes of a request and are not logged here.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response
    """
    error = exc.__class__.__name__
    headers = None
    if isinstance(exc, TRANSIENT_ERRORS):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("request_transient_error", error=error, message=exc.message, path=request.url.path)
    elif exc.status_code >= 500:
        logger.error("request_app_error", error=error, message=exc.message, path=request.url.path)

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, error, exc.message),
        headers=headers,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Render framework HTTP errors: missing or bad bearer tokens (401), unknown routes.

    Headers such as WWW-Authenticate are passed through.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, "HTTPException", exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Render request schema failures, e.g. a naive ``start_at`` or a malformed UUID.

    Interval rules checked by the services come back as InvalidIntervalException
    instead; this handler covers payloads pydantic rejects outright.

    Args:
        request: Request object
        exc: Validation exception

    Returns:
        JSON error response with validation details
    """
    # ctx may carry the raised exception object, which is not JSON
    details = [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
    body = _error_body(request, "ValidationError", "Request validation failed")
    body["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=422, content=body)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected failure and hide its details from the client."""
    logger.exception("request_unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "InternalServerError", "An unexpected error occurred"),
    )
