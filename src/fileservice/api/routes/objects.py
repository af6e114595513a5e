"""Object routes.

- POST   /upload/{bucket}/{object_path}        upload the raw request body
- GET    /download/{bucket}/{object_path}      stream one object, or a ZIP of
                                               a prefix with ?directory=true
- HEAD   /info/{bucket}/{object_path}          object metadata as headers
- DELETE /delete/{bucket}/{object_path}        delete one object
- DELETE /delete-prefix/{bucket}/{prefix}      delete every object under a prefix
- GET    /list/{bucket}, /list/                recursive listing (?prefix=)

The bucket segment "_" selects the configured default bucket.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator
from datetime import UTC, datetime
from email.utils import format_datetime
from itertools import chain
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from fileservice.api.deps import ConfigDep, ContextDep, StoreDep, resolve_bucket
from fileservice.api.errors import FileServiceHttpError
from fileservice.storage.archive import ArchiveReport, archive_filename, iter_prefix_archive
from fileservice.storage.bulk import delete_prefix
from fileservice.storage.directories import normalize_prefix
from fileservice.storage.models import DEFAULT_CONTENT_TYPE
from fileservice.storage.streams import ObjectStream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Objects"])

# Upload bodies above this size spill from memory to a temporary file
UPLOAD_SPOOL_MAX_MEMORY = 8 * 1024 * 1024

META_HEADER_PREFIX = "X-Meta-"


class ObjectActionResponse(BaseModel):
    message: str
    bucket: str
    object: str


class ListResponse(BaseModel):
    bucket: str
    prefix: str
    objects: list[dict[str, Any]]


class BulkDeleteResponse(BaseModel):
    bucket: str
    prefix: str
    deleted: list[str]
    errors: list[str]


def _require_object_path(object_path: str) -> str:
    object_path = object_path.lstrip("/")
    if not object_path:
        raise FileServiceHttpError(
            status_code=400, code="INVALID_ARGUMENT", message="Object path is required"
        )
    return object_path


def _parse_content_length(request: Request) -> int | None:
    raw = request.headers.get("Content-Length")
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        value = -1
    if value < 0:
        raise FileServiceHttpError(
            status_code=400,
            code="INVALID_CONTENT_LENGTH",
            message="Invalid Content-Length header",
        )
    return value


def _http_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return format_datetime(value.astimezone(UTC), usegmt=True)


def _stream_and_close(stream: ObjectStream) -> Iterator[bytes]:
    try:
        yield from stream.iter_chunks()
    finally:
        stream.close()


def _archive_body(
    chunks: Iterator[bytes], report: ArchiveReport, bucket: str, prefix: str
) -> Iterator[bytes]:
    yield from chunks
    # Headers are gone by now; the client learns of skips from the manifest entry
    if not report.ok:
        logger.warning(
            "Archive sent with %d skipped object(s): bucket=%s prefix=%s manifest=%s",
            len(report.failed),
            bucket,
            prefix,
            report.manifest,
        )


async def _spool_write(body: Any, chunk: bytes) -> None:
    """Append to the upload spool; disk writes run in the threadpool, off the event loop."""
    # _rolled flips once SpooledTemporaryFile has moved its buffer to disk
    on_disk = getattr(body, "_rolled", True)
    if on_disk or body.tell() + len(chunk) > UPLOAD_SPOOL_MAX_MEMORY:
        await run_in_threadpool(body.write, chunk)
    else:
        body.write(chunk)


@router.post("/upload/{bucket}/{object_path:path}", response_model=ObjectActionResponse)
async def upload_object(
    bucket: str,
    object_path: str,
    request: Request,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
) -> ObjectActionResponse:
    """Store the request body, creating the parent directory marker first."""
    bucket = resolve_bucket(bucket, config)
    object_path = _require_object_path(object_path)
    content_length = _parse_content_length(request)
    content_type = request.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE

    body = tempfile.SpooledTemporaryFile(max_size=UPLOAD_SPOOL_MAX_MEMORY)
    try:
        received = 0
        async for chunk in request.stream():
            await _spool_write(body, chunk)
            received += len(chunk)
        body.seek(0)
        size = content_length if content_length is not None else received

        await run_in_threadpool(store.ensure_path_exists, bucket, object_path, ctx=ctx)
        await run_in_threadpool(
            store.upload, bucket, object_path, body, size, content_type, ctx=ctx
        )
    finally:
        await run_in_threadpool(body.close)

    logger.info("Uploaded object: bucket=%s key=%s size=%d", bucket, object_path, size)
    return ObjectActionResponse(
        message="File uploaded successfully", bucket=bucket, object=object_path
    )


@router.get("/download/{bucket}/{object_path:path}")
def download_object(
    bucket: str,
    object_path: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
    directory: bool = False,
) -> Response:
    """Stream one object, or every object under the path as a ZIP archive."""
    bucket = resolve_bucket(bucket, config)
    object_path = object_path.lstrip("/")

    if directory:
        prefix = normalize_prefix(object_path)
        report = ArchiveReport()
        chunks = iter_prefix_archive(store, bucket, prefix, ctx=ctx, report=report)
        # Pull the first chunk here so a listing failure still maps to an error status
        first = next(chunks, b"")
        filename = archive_filename(prefix)
        return StreamingResponse(
            _archive_body(chain([first], chunks), report, bucket, prefix),
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    object_path = _require_object_path(object_path)
    info = store.get_object_info(bucket, object_path, ctx=ctx)
    stream = store.download(bucket, object_path, ctx=ctx)
    return StreamingResponse(
        _stream_and_close(stream),
        media_type=info.content_type or DEFAULT_CONTENT_TYPE,
        headers={"Content-Length": str(info.size)},
    )


@router.head("/info/{bucket}/{object_path:path}")
def get_object_info(
    bucket: str,
    object_path: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
) -> Response:
    """Return object metadata as headers; user metadata as X-Meta-<key>."""
    bucket = resolve_bucket(bucket, config)
    object_path = _require_object_path(object_path)
    info = store.get_object_info(bucket, object_path, ctx=ctx)

    headers = {
        "Content-Type": info.content_type,
        "Content-Length": str(info.size),
    }
    if info.last_modified is not None:
        headers["Last-Modified"] = _http_date(info.last_modified)
    for key, value in info.metadata.items():
        headers[f"{META_HEADER_PREFIX}{key}"] = value

    return Response(status_code=200, headers=headers)


@router.delete("/delete/{bucket}/{object_path:path}", response_model=ObjectActionResponse)
def delete_object(
    bucket: str,
    object_path: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
) -> ObjectActionResponse:
    bucket = resolve_bucket(bucket, config)
    object_path = _require_object_path(object_path)
    store.delete(bucket, object_path, ctx=ctx)
    return ObjectActionResponse(
        message="File deleted successfully", bucket=bucket, object=object_path
    )


@router.delete("/delete-prefix/{bucket}/{prefix:path}", response_model=BulkDeleteResponse)
def delete_objects_by_prefix(
    bucket: str,
    prefix: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
) -> BulkDeleteResponse:
    """Delete every object under the prefix; per-object failures are reported."""
    bucket = resolve_bucket(bucket, config)
    prefix = prefix.lstrip("/")
    result = delete_prefix(store, bucket, prefix, ctx=ctx)
    return BulkDeleteResponse(bucket=bucket, prefix=prefix, **result.to_dict())


@router.get("/list/{bucket}", response_model=ListResponse)
def list_objects(
    bucket: str,
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
    prefix: str = "",
) -> ListResponse:
    bucket = resolve_bucket(bucket, config)
    records = store.list(bucket, prefix, ctx=ctx)
    return ListResponse(bucket=bucket, prefix=prefix, objects=[r.to_dict() for r in records])


@router.get("/list/", response_model=ListResponse)
def list_default_bucket(
    config: ConfigDep,
    store: StoreDep,
    ctx: ContextDep,
    prefix: str = "",
) -> ListResponse:
    return list_objects(config.storage.bucket, config, store, ctx, prefix)
