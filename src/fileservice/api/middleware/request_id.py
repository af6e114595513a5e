"""X-Request-Id propagation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from fileservice.api.error_model import REQUEST_ID_HEADER, resolve_request_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID in request.state and the response header.

    Installed outermost, so auth failures and error envelopes see the same ID.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request.state.request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response
