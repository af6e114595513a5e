"""MinIO object storage backend (local-network S3-compatible store)."""

from __future__ import annotations

import io
import logging
from typing import Any, BinaryIO

from minio import Minio
from minio.error import MinioException, S3Error

from fileservice.storage.context import OperationContext, check_context
from fileservice.storage.directories import (
    dedupe_directories,
    is_directory_key,
    normalize_directory,
)
from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    ObjectStorageError,
    StorageBackendError,
)
from fileservice.storage.models import DEFAULT_CONTENT_TYPE, DIRECTORY_CONTENT_TYPE, FileObject
from fileservice.storage.object_store import ObjectStore
from fileservice.storage.streams import ObjectStream
from fileservice.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

# Multipart part size used when the caller cannot tell us the length up front
UNKNOWN_SIZE_PART_SIZE = 10 * 1024 * 1024

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NoSuchBucket", "ResourceNotFound"})
_INVALID_CODES = frozenset(
    {"InvalidBucketName", "InvalidObjectName", "InvalidArgument", "KeyTooLongError"}
)

_USER_META_PREFIX = "x-amz-meta-"


def _strip_http(endpoint: str) -> str:
    # Minio client expects "host:port" (no scheme)
    endpoint = (endpoint or "").strip()
    endpoint = endpoint.replace("http://", "").replace("https://", "")
    return endpoint.rstrip("/")


def _user_metadata(headers: Any) -> dict[str, str]:
    """Extract user metadata from a MinIO metadata/header mapping."""
    result: dict[str, str] = {}
    if not headers:
        return result
    for k, v in headers.items():
        key = str(k)
        if key.lower().startswith(_USER_META_PREFIX):
            result[key[len(_USER_META_PREFIX) :]] = str(v)
    return result


def translate_minio_error(
    e: Exception, *, bucket: str | None = None, key: str | None = None
) -> ObjectStorageError:
    """Map a MinIO client exception onto the storage error taxonomy."""
    if isinstance(e, ObjectStorageError):
        return e
    if isinstance(e, S3Error):
        if e.code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(bucket=bucket, key=key)
        if e.code in _INVALID_CODES:
            return InvalidArgumentError(
                message=f"MinIO rejected request: {e.code}", bucket=bucket, key=key
            )
        return StorageBackendError(
            message=f"MinIO error {e.code}: {e.message}", bucket=bucket, key=key, cause=e
        )
    if isinstance(e, (ValueError, TypeError)):
        return InvalidArgumentError(message=str(e), bucket=bucket, key=key)
    if isinstance(e, MinioException):
        return StorageBackendError(message=f"MinIO error: {e}", bucket=bucket, key=key, cause=e)
    return StorageBackendError(
        message=f"MinIO request failed: {e}", bucket=bucket, key=key, cause=e
    )


class MinIOObjectStore(ObjectStore):
    """MinIO implementation of the storage contract.

    Directory listing uses MinIO's native non-recursive listing, which
    groups keys by "/" and reports each group as a prefix entry.
    """

    def __init__(self, client: Minio) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls,
        endpoint: str,
        access_key: str,
        secret_key: str,
        use_ssl: bool = False,
        region: str | None = None,
    ) -> MinIOObjectStore:
        host = _strip_http(endpoint)
        if not host:
            raise ValueError("MinIO endpoint is empty or invalid")
        client = Minio(
            endpoint=host,
            access_key=access_key,
            secret_key=secret_key,
            secure=bool(use_ssl),
            region=region or None,
        )
        logger.info("MinIO client created: endpoint=%s secure=%s", host, use_ssl)
        return cls(client)

    @property
    def backend_name(self) -> str:
        return "minio"

    def _to_record(self, obj: Any) -> FileObject:
        name = obj.object_name
        is_dir = bool(getattr(obj, "is_dir", False)) or is_directory_key(name)
        return FileObject(
            name=name,
            size=int(obj.size or 0),
            content_type=obj.content_type
            or (DIRECTORY_CONTENT_TYPE if is_dir else DEFAULT_CONTENT_TYPE),
            last_modified=obj.last_modified,
            metadata=_user_metadata(obj.metadata),
            is_dir=is_dir,
        )

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
        length = size if size > 0 else -1
        try:
            self._client.put_object(
                bucket_name=bucket,
                object_name=object_name,
                data=stream,
                length=length,
                content_type=content_type or DEFAULT_CONTENT_TYPE,
                part_size=0 if length > 0 else UNKNOWN_SIZE_PART_SIZE,
            )
        except Exception as e:
            raise translate_minio_error(e, bucket=bucket, key=object_name) from e
        logger.debug("Uploaded to MinIO: bucket=%s key=%s size=%d", bucket, object_name, size)

    @traced_storage_operation("download")
    def download(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> ObjectStream:
        check_context(ctx, bucket=bucket, key=object_name)
        try:
            response = self._client.get_object(bucket_name=bucket, object_name=object_name)
        except Exception as e:
            raise translate_minio_error(e, bucket=bucket, key=object_name) from e

        def _release() -> None:
            response.close()
            response.release_conn()

        return ObjectStream(response, on_close=_release, ctx=ctx, bucket=bucket, key=object_name)

    @traced_storage_operation("delete")
    def delete(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        try:
            self._client.remove_object(bucket_name=bucket, object_name=object_name)
        except Exception as e:
            raise translate_minio_error(e, bucket=bucket, key=object_name) from e

    def _iter_objects(
        self,
        bucket: str,
        prefix: str,
        recursive: bool,
        ctx: OperationContext | None,
    ) -> list[FileObject]:
        records: list[FileObject] = []
        try:
            for obj in self._client.list_objects(
                bucket_name=bucket,
                prefix=prefix or None,
                recursive=recursive,
                include_user_meta=True,
            ):
                check_context(ctx, bucket=bucket, key=prefix)
                records.append(self._to_record(obj))
        except Exception as e:
            raise translate_minio_error(e, bucket=bucket, key=prefix) from e
        return records

    @traced_storage_operation("list")
    def list(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        check_context(ctx, bucket=bucket, key=prefix)
        return self._iter_objects(bucket, prefix, True, ctx)

    @traced_storage_operation("get_object_info")
    def get_object_info(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> FileObject:
        check_context(ctx, bucket=bucket, key=object_name)
        try:
            info = self._client.stat_object(bucket_name=bucket, object_name=object_name)
        except Exception as e:
            raise translate_minio_error(e, bucket=bucket, key=object_name) from e
        return self._to_record(info)

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
        try:
            self._client.put_object(
                bucket_name=bucket,
                object_name=marker,
                data=io.BytesIO(b""),
                length=0,
                content_type=DIRECTORY_CONTENT_TYPE,
            )
        except Exception as e:
            raise translate_minio_error(e, bucket=bucket, key=marker) from e

    @traced_storage_operation("list_directories")
    def list_directories(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        check_context(ctx, bucket=bucket, key=prefix)
        entries = self._iter_objects(bucket, prefix, False, ctx)
        return dedupe_directories((e for e in entries if e.is_dir), prefix)
