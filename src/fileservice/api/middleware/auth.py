"""API key authentication middleware.

When enabled, every request except the exempt paths must carry a configured
key in the X-API-Key header or, failing that, the api_key query parameter.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable, Iterable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from fileservice.api.error_model import make_error_response

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
API_KEY_QUERY_PARAM = "api_key"
DEFAULT_EXEMPT_PATHS = frozenset({"/health"})


def _constant_time_match(provided_key: str, keys: Iterable[str]) -> bool:
    """Compare against every key with hmac.compare_digest; no early exit."""
    provided_bytes = provided_key.encode("utf-8")
    matched = False
    for key in keys:
        if hmac.compare_digest(provided_bytes, key.encode("utf-8")):
            matched = True
    return matched


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Reject requests without a valid API key with 401 UNAUTHORIZED."""

    def __init__(
        self,
        app: ASGIApp,
        enabled: bool = False,
        api_keys: Iterable[str] = (),
        exempt_paths: Iterable[str] = DEFAULT_EXEMPT_PATHS,
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._api_keys = tuple(api_keys)
        self._exempt_paths = frozenset(exempt_paths)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not self._enabled or request.url.path in self._exempt_paths:
            return await call_next(request)

        api_key = request.headers.get(API_KEY_HEADER) or request.query_params.get(
            API_KEY_QUERY_PARAM
        )
        if not api_key:
            return make_error_response(
                request, code="UNAUTHORIZED", message="API key is required", http_status=401
            )

        if not _constant_time_match(api_key, self._api_keys):
            logger.info("Rejected request with invalid API key: path=%s", request.url.path)
            return make_error_response(
                request, code="UNAUTHORIZED", message="Invalid API key", http_status=401
            )

        return await call_next(request)
