"""Request-scoped dependencies shared by the routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from fileservice.config import AppConfig
from fileservice.storage.context import OperationContext
from fileservice.storage.object_store import ObjectStore

# Path segment standing in for the configured default bucket
DEFAULT_BUCKET_ALIAS = "_"


def get_config(request: Request) -> AppConfig:
    config: AppConfig = request.app.state.config
    return config


def get_store(request: Request) -> ObjectStore:
    store: ObjectStore = request.app.state.store
    return store


def get_operation_context(request: Request) -> OperationContext:
    """One context per request, bounded by server.request_timeout_seconds."""
    config = get_config(request)
    return OperationContext(timeout=config.server.request_timeout_seconds)


def resolve_bucket(bucket: str | None, config: AppConfig) -> str:
    if not bucket or bucket == DEFAULT_BUCKET_ALIAS:
        return config.storage.bucket
    return bucket


ConfigDep = Annotated[AppConfig, Depends(get_config)]
StoreDep = Annotated[ObjectStore, Depends(get_store)]
ContextDep = Annotated[OperationContext, Depends(get_operation_context)]
