"""Virtual directory routes.

- GET  /directories/{bucket}?prefix=...       immediate and nested sub-directories
- POST /directories/{bucket}/{object_path}    create a directory marker
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from fileservice.api.deps import ConfigDep, ContextDep, StoreDep, resolve_bucket
from fileservice.api.errors import FileServiceHttpError
from fileservice.storage.directories import normalize_directory

router = APIRouter(tags=["Directories"])


class DirectoryListResponse(BaseModel):
    bucket: str
    prefix: str
    directories: list[dict[str, Any]]


class DirectoryCreatedResponse(BaseModel):
    message: str
    bucket: str
    directory: str


@router.get("/directories/{bucket}", response_model=DirectoryListResponse)
def list_directories(
    bucket: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
    prefix: str = "",
) -> DirectoryListResponse:
    bucket = resolve_bucket(bucket, config)
    records = store.list_directories(bucket, prefix, ctx=ctx)
    return DirectoryListResponse(
        bucket=bucket, prefix=prefix, directories=[r.to_dict() for r in records]
    )


@router.post("/directories/{bucket}/{object_path:path}", response_model=DirectoryCreatedResponse)
def create_directory(
    bucket: str,
    object_path: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
) -> DirectoryCreatedResponse:
    bucket = resolve_bucket(bucket, config)
    marker = normalize_directory(object_path.lstrip("/"))
    if not marker:
        raise FileServiceHttpError(
            status_code=400, code="INVALID_ARGUMENT", message="Directory path is required"
        )
    store.create_directory(bucket, marker, ctx=ctx)
    return DirectoryCreatedResponse(
        message="Directory created successfully", bucket=bucket, directory=marker
    )
