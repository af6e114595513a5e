"""File service FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from fileservice import __version__
from fileservice.api.errors import (
    FileServiceHttpError,
    file_service_http_error_handler,
    generic_exception_handler,
    http_exception_handler,
    object_storage_error_handler,
    request_validation_error_handler,
)
from fileservice.api.middleware.auth import ApiKeyMiddleware
from fileservice.api.middleware.request_id import RequestIdMiddleware
from fileservice.api.routes.directories import router as directories_router
from fileservice.api.routes.health import router as health_router
from fileservice.api.routes.objects import router as objects_router
from fileservice.config import AppConfig, load_config
from fileservice.observability.tracing import configure_tracing, instrument_fastapi
from fileservice.storage.errors import ObjectStorageError
from fileservice.storage.factory import create_store
from fileservice.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None,
    store: ObjectStore | None = None,
) -> FastAPI:
    """Create and configure the file service application.

    This factory:
    - Loads configuration when none is given
    - Builds the single storage backend (unless one is injected, e.g. in tests)
    - Registers middleware and exception handlers
    - Mounts the health, object and directory routers

    Middleware ordering (outermost to innermost):
    1. RequestIdMiddleware - so request_id is available to every error path
    2. ApiKeyMiddleware - rejects unauthenticated requests before any route runs

    Args:
        config: Application configuration. If None, load_config() is used.
        store: Pre-built backend. If None, one is created from config.storage.

    Returns:
        Configured FastAPI application instance.

    Raises:
        ConfigError: If configuration cannot be loaded.
        StorageConfigError: If the storage backend cannot be constructed.
    """
    if config is None:
        config = load_config()
    if store is None:
        store = create_store(config.storage)

    app = FastAPI(
        title="File Service",
        description="Uniform file-object API over multiple object storage backends",
        version=__version__,
    )

    app.state.config = config
    app.state.store = store

    configure_tracing()

    app.add_middleware(
        ApiKeyMiddleware,
        enabled=config.auth.enabled,
        api_keys=config.auth.api_keys,
    )
    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    app.add_exception_handler(ObjectStorageError, object_storage_error_handler)
    app.add_exception_handler(FileServiceHttpError, file_service_http_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(objects_router)
    app.include_router(directories_router)

    if config.auth.enabled and not config.auth.api_keys:
        logger.warning("API key auth is enabled but no keys are configured; all calls fail")

    logger.info(
        "File service app created: storage=%s default_bucket=%s auth=%s",
        store.backend_name,
        config.storage.bucket,
        config.auth.enabled,
    )
    return app
