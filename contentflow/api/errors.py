"""Structured error taxonomy for the ContentFlow API.

Provides a canonical set of error codes that clients can switch on, and the
exception handlers that translate sheets-layer failures into responses.

Usage::

    from contentflow.api.errors import ErrorCode, error_response

    return JSONResponse(
        status_code=429,
        content=error_response(ErrorCode.RATE_LIMITED, "Too many requests."),
    )
"""

import logging
from enum import Enum

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from contentflow.sheets import (
    ConnectivityError,
    NotFoundError,
    NotInitializedError,
    SchemaError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Canonical error codes for API responses.

    Client applications should switch on ``error.code`` (not HTTP status)
    to differentiate error handling paths.
    """

    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    RATE_LIMITED = "rate_limit_exceeded"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    SHEETS_UNAVAILABLE = "sheets_unavailable"
    SCHEMA_ERROR = "schema_error"
    NOT_READY = "not_ready"
    INTERNAL_ERROR = "internal_error"


def error_response(code: ErrorCode, message: str) -> dict:
    """Build a structured error response body.

    Args:
        code: One of the ``ErrorCode`` enum values.
        message: Human-readable error description.

    Returns:
        Dict with ``error`` object containing ``code`` and ``message``.
    """
    return {"error": {"code": code.value, "message": message}}


def register_exception_handlers(app: FastAPI) -> None:
    """Map sheets-layer exceptions and request validation to responses."""

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=error_response(ErrorCode.NOT_FOUND, str(exc)),
        )

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCode.VALIDATION_ERROR,
                "Invalid request: " + ", ".join(fields),
            ),
        )

    @app.exception_handler(NotInitializedError)
    async def _not_ready(request: Request, exc: NotInitializedError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content=error_response(ErrorCode.NOT_READY, str(exc)),
            headers={"Retry-After": "30"},
        )

    @app.exception_handler(ConnectivityError)
    async def _unavailable(request: Request, exc: ConnectivityError) -> JSONResponse:
        logger.error("Sheets unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=502,
            content=error_response(ErrorCode.SHEETS_UNAVAILABLE, "Spreadsheet is unavailable."),
        )

    @app.exception_handler(SchemaError)
    async def _schema(request: Request, exc: SchemaError) -> JSONResponse:
        logger.error("Schema error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content=error_response(ErrorCode.SCHEMA_ERROR, str(exc)),
        )
