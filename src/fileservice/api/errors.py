"""Exception handlers installed by ``create_app``.

Each handler renders the shared envelope from ``error_model``; stack traces
and provider messages of unexpected errors never reach the client.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from fileservice.api.error_model import (
    error_code_for_status,
    make_error_response,
    request_id_for,
    storage_error_status,
)
from fileservice.storage.errors import ObjectStorageError

logger = logging.getLogger(__name__)

# Location prefixes FastAPI adds to validation errors; clients only need the field name
_LOCATION_PARTS = frozenset({"body", "query", "path", "header"})


class FileServiceHttpError(Exception):
    """A route-level failure with an explicit status and envelope code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


async def object_storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ObjectStorageError)

    status, code = storage_error_status(exc)
    if status >= 500:
        logger.warning(
            "Storage failure: %s: %s",
            type(exc).__name__,
            exc,
            extra={"request_id": request_id_for(request)},
        )
    details = {name: value for name, value in (("bucket", exc.bucket), ("key", exc.key)) if value}
    return make_error_response(
        request, code=code, message=exc.message, http_status=status, details=details or None
    )


async def file_service_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, FileServiceHttpError)
    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Route misses (404) and wrong methods (405) raised by the router."""
    assert isinstance(exc, HTTPException)
    return make_error_response(
        request,
        code=error_code_for_status(exc.status_code),
        message=str(exc.detail or f"HTTP {exc.status_code}"),
        http_status=exc.status_code,
    )


def _field_name(loc: tuple[Any, ...] | list[Any]) -> str:
    parts = [str(part) for part in loc if part not in _LOCATION_PARTS]
    return ".".join(parts) or "request"


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Malformed query or path parameters are client errors: 400 INVALID_ARGUMENT."""
    assert isinstance(exc, RequestValidationError)

    errors = [
        {"field": _field_name(error.get("loc", ())), "message": error.get("msg", "invalid")}
        for error in exc.errors()
    ]
    return make_error_response(
        request,
        code="INVALID_ARGUMENT",
        message="Request validation failed",
        http_status=400,
        details={"errors": errors} if errors else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled %s while serving %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        extra={"request_id": request_id_for(request)},
    )
    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
    )
