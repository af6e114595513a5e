"""File service API middleware package."""

from fileservice.api.middleware.auth import ApiKeyMiddleware
from fileservice.api.middleware.request_id import RequestIdMiddleware

__all__ = ["ApiKeyMiddleware", "RequestIdMiddleware"]
