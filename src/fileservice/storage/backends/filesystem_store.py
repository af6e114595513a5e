"""Filesystem object storage backend.

Local development and testing backend that behaves like a flat object store:

- One directory per bucket under the base directory
- Keys map to hashed entry directories, so "a/b.txt" and the marker "a/"
  are independent objects exactly as in a real object store
- Path traversal protection on keys and bucket names
- Atomic writes via temp file + rename

Layout:
    {base_dir}/{bucket}/{safe_key}_{key_hash}/
        content.data   # object bytes
        meta.json      # name, size, content type, mtime, metadata

Environment Variables:
    FILESERVICE_FILESYSTEM_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / fileservice_objects)
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import os
import re
import shutil
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, BinaryIO

from fileservice.storage.context import OperationContext, check_context
from fileservice.storage.directories import (
    is_directory_key,
    normalize_directory,
    synthesize_directories,
)
from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from fileservice.storage.models import DEFAULT_CONTENT_TYPE, DIRECTORY_CONTENT_TYPE, FileObject
from fileservice.storage.object_store import ObjectStore
from fileservice.storage.streams import DEFAULT_CHUNK_SIZE, ObjectStream
from fileservice.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

FILESYSTEM_BASE_DIR_ENV = "FILESERVICE_FILESYSTEM_BASE_DIR"

_BUCKET_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._\-]{0,62}$")

_METADATA_FILE = "meta.json"
_CONTENT_FILE = "content.data"


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences.

    Detects:
    - ".." segments
    - Absolute paths (starting with / or ~) and drive letters like C:
    - Backslashes (Windows path separators)
    - Null bytes
    """
    if not key:
        return True
    if "\x00" in key or "\\" in key:
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    return any(segment == ".." for segment in key.split("/"))


def _validate_key(key: str, bucket: str) -> None:
    if _is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            bucket=bucket,
            key=key,
        )


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                FILESERVICE_FILESYSTEM_BASE_DIR or the OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(FILESYSTEM_BASE_DIR_ENV) or None

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "fileservice_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _bucket_dir(self, bucket: str) -> Path:
        if not bucket or not _BUCKET_PATTERN.match(bucket) or bucket in (".", ".."):
            raise InvalidArgumentError(message=f"Invalid bucket name: {bucket!r}", bucket=bucket)
        return self._base_dir / bucket

    def _entry_dir(self, bucket: str, key: str) -> Path:
        """Map a key onto its entry directory, validating inputs."""
        _validate_key(key, bucket)
        key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
        safe_key = re.sub(r"[^a-zA-Z0-9_\-]", "_", key)[:64]
        entry = self._bucket_dir(bucket) / f"{safe_key}_{key_hash}"

        resolved = entry.resolve()
        try:
            resolved.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                bucket=bucket,
                key=key,
            ) from e
        return entry

    def _read_metadata(self, entry: Path) -> dict[str, Any] | None:
        meta_file = entry / _METADATA_FILE
        if not meta_file.exists():
            return None
        try:
            data: dict[str, Any] = json.loads(meta_file.read_text(encoding="utf-8"))
            return data
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read metadata %s: %s", meta_file, e)
            return None

    def _record_from_metadata(self, data: dict[str, Any]) -> FileObject:
        name = str(data["name"])
        return FileObject(
            name=name,
            size=int(data.get("size") or 0),
            content_type=str(data.get("content_type") or DEFAULT_CONTENT_TYPE),
            last_modified=_parse_datetime(data.get("last_modified")),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            is_dir=is_directory_key(name),
        )

    def _write_entry(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        content_type: str,
        ctx: OperationContext | None,
    ) -> None:
        entry = self._entry_dir(bucket, key)
        token = uuid.uuid4().hex
        tmp_content = entry / f"{_CONTENT_FILE}.{token}.tmp"
        tmp_meta = entry / f"{_METADATA_FILE}.{token}.tmp"

        try:
            entry.mkdir(parents=True, exist_ok=True)
            size = 0
            with tmp_content.open("wb") as out:
                while True:
                    check_context(ctx, bucket=bucket, key=key)
                    chunk = stream.read(DEFAULT_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                    size += len(chunk)

            metadata = {
                "name": key,
                "size": size,
                "content_type": content_type,
                "last_modified": datetime.now(UTC).isoformat(),
                "metadata": {},
            }
            tmp_meta.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
            tmp_content.replace(entry / _CONTENT_FILE)
            tmp_meta.replace(entry / _METADATA_FILE)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        finally:
            tmp_content.unlink(missing_ok=True)
            tmp_meta.unlink(missing_ok=True)

        logger.debug("Stored object: bucket=%s key=%s size=%d", bucket, key, size)

    @traced_storage_operation("upload")
    def upload(
        self,
        bucket: str,
        object_name: str,
        stream: BinaryIO,
        size: int = 0,
        content_type: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        self._write_entry(bucket, object_name, stream, content_type or DEFAULT_CONTENT_TYPE, ctx)

    @traced_storage_operation("download")
    def download(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> ObjectStream:
        check_context(ctx, bucket=bucket, key=object_name)
        entry = self._entry_dir(bucket, object_name)
        content_file = entry / _CONTENT_FILE
        if self._read_metadata(entry) is None or not content_file.exists():
            raise ObjectNotFoundError(bucket=bucket, key=object_name)

        try:
            handle = content_file.open("rb")
        except FileNotFoundError as e:
            raise ObjectNotFoundError(bucket=bucket, key=object_name) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open object: {e}",
                bucket=bucket,
                key=object_name,
                cause=e,
            ) from e

        return ObjectStream(handle, on_close=handle.close, ctx=ctx, bucket=bucket, key=object_name)

    @traced_storage_operation("delete")
    def delete(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        entry = self._entry_dir(bucket, object_name)
        if not entry.exists():
            raise ObjectNotFoundError(bucket=bucket, key=object_name)

        try:
            shutil.rmtree(entry)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                bucket=bucket,
                key=object_name,
                cause=e,
            ) from e
        logger.debug("Deleted object: bucket=%s key=%s", bucket, object_name)

    @traced_storage_operation("list")
    def list(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        check_context(ctx, bucket=bucket, key=prefix)
        bucket_dir = self._bucket_dir(bucket)
        if not bucket_dir.exists():
            return []

        records: list[FileObject] = []
        try:
            entries = sorted(bucket_dir.iterdir())
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list bucket: {e}",
                bucket=bucket,
                cause=e,
            ) from e

        for entry in entries:
            data = self._read_metadata(entry)
            if data is None or not str(data.get("name", "")).startswith(prefix):
                continue
            records.append(self._record_from_metadata(data))

        records.sort(key=lambda r: r.name)
        return records

    @traced_storage_operation("get_object_info")
    def get_object_info(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> FileObject:
        check_context(ctx, bucket=bucket, key=object_name)
        data = self._read_metadata(self._entry_dir(bucket, object_name))
        if data is None:
            raise ObjectNotFoundError(bucket=bucket, key=object_name)
        return self._record_from_metadata(data)

    @traced_storage_operation("create_directory")
    def create_directory(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        marker = normalize_directory(object_name)
        if not marker:
            raise InvalidArgumentError(message="Empty directory name", bucket=bucket)
        self._write_entry(bucket, marker, io.BytesIO(b""), DIRECTORY_CONTENT_TYPE, ctx)

    @traced_storage_operation("list_directories")
    def list_directories(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        names = [record.name for record in self.list(bucket, prefix, ctx=ctx)]
        return synthesize_directories(names, prefix)
