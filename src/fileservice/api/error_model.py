"""Error envelope shared by exception handlers and middleware.

Every non-2xx JSON body has the same four keys::

    {"code": "NOT_FOUND", "message": "...", "details": {...} | null, "request_id": "..."}

and the response repeats the request ID in X-Request-Id. Details never carry
credentials or endpoints.
"""

from __future__ import annotations

import uuid
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    ObjectStorageError,
    OperationCancelledError,
    StorageBackendError,
)

REQUEST_ID_HEADER = "X-Request-Id"

# Order matters: OperationCancelledError subclasses StorageBackendError
STORAGE_ERROR_STATUS: tuple[tuple[type[ObjectStorageError], int, str], ...] = (
    (ObjectNotFoundError, 404, "NOT_FOUND"),
    (InvalidArgumentError, 400, "INVALID_ARGUMENT"),
    (OperationCancelledError, 504, "TIMEOUT"),
    (StorageBackendError, 502, "BACKEND_ERROR"),
)

# Codes whose name differs from the HTTP reason phrase
_STATUS_CODE_OVERRIDES = {500: "INTERNAL_ERROR", 400: "BAD_REQUEST"}


def resolve_request_id(incoming: str | None) -> str:
    """Keep a caller-supplied ID (stripped); blank or missing gets a fresh uuid4."""
    candidate = (incoming or "").strip()
    return candidate or str(uuid.uuid4())


def request_id_for(request: Request) -> str:
    """The middleware-assigned ID; falls back to the header when the middleware never ran."""
    assigned = getattr(request.state, "request_id", None)
    if assigned:
        return str(assigned)
    return resolve_request_id(request.headers.get(REQUEST_ID_HEADER))


def error_code_for_status(status_code: int) -> str:
    """HTTP status to envelope code: 404 -> "NOT_FOUND", 405 -> "METHOD_NOT_ALLOWED"."""
    if status_code in _STATUS_CODE_OVERRIDES:
        return _STATUS_CODE_OVERRIDES[status_code]
    try:
        return HTTPStatus(status_code).phrase.upper().replace(" ", "_").replace("-", "_")
    except ValueError:
        return "ERROR"


def storage_error_status(exc: ObjectStorageError) -> tuple[int, str]:
    """Map a storage error onto (HTTP status, envelope code); unknown kinds are 500."""
    for error_type, status, code in STORAGE_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status, code
    return 500, "INTERNAL_ERROR"


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    request_id = request_id_for(request)
    return JSONResponse(
        status_code=http_status,
        content={
            "code": code,
            "message": message,
            "details": details,
            "request_id": request_id,
        },
        headers={REQUEST_ID_HEADER: request_id},
    )
