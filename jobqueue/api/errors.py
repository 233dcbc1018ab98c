"""
Queue error to HTTP response mapping.
"""

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jobqueue.errors import (
    AlreadyProcessingError,
    InvalidInputError,
    InvalidStateError,
    JobNotFoundError,
    StoreError,
)
from jobqueue.types.api import ErrorResponse

logger = logging.getLogger(__name__)

_EXCEPTION_STATUS: dict[type[Exception], int] = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    InvalidStateError: status.HTTP_400_BAD_REQUEST,
    AlreadyProcessingError: status.HTTP_400_BAD_REQUEST,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    StoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _error_response(status_code: int, error: str, detail: str | None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _make_handler(status_code: int):
    """Create a handler that renders a queue error with a fixed status code."""

    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        return _error_response(status_code, getattr(exc, "kind", "error"), str(exc))

    return _handler


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed requests are client errors like any other invalid input
    messages = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        InvalidInputError.kind,
        messages or "Invalid request",
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register queue exception handlers on the FastAPI app."""
    for exc_cls, status_code in _EXCEPTION_STATUS.items():
        app.add_exception_handler(exc_cls, _make_handler(status_code))

    app.add_exception_handler(RequestValidationError, _validation_handler)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Internal server error",
        )
