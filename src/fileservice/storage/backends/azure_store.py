"""Azure Blob Storage backend.

Containers play the role of buckets. The blob service has no delimiter-aware
listing in the flat API used here, so directories are synthesized from the
"/" segments of every blob name under the prefix.
"""

from __future__ import annotations

import logging
import math
from typing import Any, BinaryIO

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from fileservice.storage.context import OperationContext, check_context
from fileservice.storage.directories import (
    is_directory_key,
    normalize_directory,
    synthesize_directories,
)
from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    ObjectStorageError,
    StorageBackendError,
)
from fileservice.storage.models import DEFAULT_CONTENT_TYPE, DIRECTORY_CONTENT_TYPE, FileObject
from fileservice.storage.object_store import ObjectStore
from fileservice.storage.streams import IteratorReader, ObjectStream
from fileservice.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_INVALID_ERROR_CODES = frozenset({"InvalidResourceName", "InvalidUri", "OutOfRangeInput"})


def translate_azure_error(
    e: Exception, *, bucket: str | None = None, key: str | None = None
) -> ObjectStorageError:
    """Map an azure-core exception onto the storage error taxonomy."""
    if isinstance(e, ObjectStorageError):
        return e
    if isinstance(e, ResourceNotFoundError):
        return ObjectNotFoundError(bucket=bucket, key=key)
    if isinstance(e, HttpResponseError):
        error_code = getattr(e, "error_code", None) or ""
        if e.status_code == 404:
            return ObjectNotFoundError(bucket=bucket, key=key)
        if e.status_code == 400 or error_code in _INVALID_ERROR_CODES:
            return InvalidArgumentError(
                message=f"Azure rejected request: {error_code or e.status_code}",
                bucket=bucket,
                key=key,
            )
        return StorageBackendError(
            message=f"Azure error {e.status_code}: {e.message}", bucket=bucket, key=key, cause=e
        )
    if isinstance(e, (ValueError, TypeError)):
        return InvalidArgumentError(message=str(e), bucket=bucket, key=key)
    if isinstance(e, AzureError):
        return StorageBackendError(message=f"Azure error: {e}", bucket=bucket, key=key, cause=e)
    return StorageBackendError(
        message=f"Azure request failed: {e}", bucket=bucket, key=key, cause=e
    )


def _timeout_kwargs(ctx: OperationContext | None) -> dict[str, Any]:
    """Server-side timeout (whole seconds) derived from the context deadline."""
    if ctx is None:
        return {}
    remaining = ctx.remaining()
    if remaining is None:
        return {}
    return {"timeout": max(1, math.ceil(remaining))}


class AzureBlobObjectStore(ObjectStore):
    """Azure Blob Storage implementation of the storage contract."""

    def __init__(self, service_client: BlobServiceClient) -> None:
        self._service = service_client

    @classmethod
    def from_settings(
        cls,
        endpoint: str = "",
        account_name: str = "",
        account_key: str = "",
        connection_string: str = "",
    ) -> AzureBlobObjectStore:
        """Build a client from a connection string or account name and key.

        ``endpoint`` overrides the public account URL (e.g. for Azurite).
        """
        if connection_string:
            service = BlobServiceClient.from_connection_string(connection_string)
        elif account_name and account_key:
            account_url = endpoint.rstrip("/") or f"https://{account_name}.blob.core.windows.net"
            service = BlobServiceClient(
                account_url=account_url,
                credential={"account_name": account_name, "account_key": account_key},
            )
        else:
            raise ValueError(
                "Must provide either connection_string or both account_name and account_key"
            )
        logger.info("Azure blob client created: account=%s", service.account_name)
        return cls(service)

    @property
    def backend_name(self) -> str:
        return "azure"

    def _blob(self, bucket: str, object_name: str) -> Any:
        return self._service.get_blob_client(container=bucket, blob=object_name)

    @staticmethod
    def _to_record(props: Any) -> FileObject:
        name = props.name
        is_dir = is_directory_key(name)
        settings = getattr(props, "content_settings", None)
        content_type = getattr(settings, "content_type", None) or (
            DIRECTORY_CONTENT_TYPE if is_dir else DEFAULT_CONTENT_TYPE
        )
        return FileObject(
            name=name,
            size=int(props.size or 0),
            content_type=content_type,
            last_modified=props.last_modified,
            metadata={str(k): str(v) for k, v in (props.metadata or {}).items()},
            is_dir=is_dir,
        )

    def _put(
        self,
        bucket: str,
        object_name: str,
        data: Any,
        length: int | None,
        content_type: str,
        ctx: OperationContext | None,
    ) -> None:
        try:
            self._blob(bucket, object_name).upload_blob(
                data,
                length=length,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
                **_timeout_kwargs(ctx),
            )
        except Exception as e:
            raise translate_azure_error(e, bucket=bucket, key=object_name) from e

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
        length = size if size > 0 else None
        self._put(bucket, object_name, stream, length, content_type or DEFAULT_CONTENT_TYPE, ctx)
        logger.debug("Uploaded to Azure: container=%s blob=%s size=%d", bucket, object_name, size)

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
            downloader = self._blob(bucket, object_name).download_blob(**_timeout_kwargs(ctx))
        except Exception as e:
            raise translate_azure_error(e, bucket=bucket, key=object_name) from e
        reader = IteratorReader(iter(downloader.chunks()))
        return ObjectStream(reader, ctx=ctx, bucket=bucket, key=object_name)

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
            self._blob(bucket, object_name).delete_blob(**_timeout_kwargs(ctx))
        except Exception as e:
            raise translate_azure_error(e, bucket=bucket, key=object_name) from e

    @traced_storage_operation("list")
    def list(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        check_context(ctx, bucket=bucket, key=prefix)
        container = self._service.get_container_client(bucket)
        records: list[FileObject] = []
        try:
            for props in container.list_blobs(
                name_starts_with=prefix or None,
                include=["metadata"],
                **_timeout_kwargs(ctx),
            ):
                check_context(ctx, bucket=bucket, key=prefix)
                records.append(self._to_record(props))
        except Exception as e:
            raise translate_azure_error(e, bucket=bucket, key=prefix) from e
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
        try:
            props = self._blob(bucket, object_name).get_blob_properties(**_timeout_kwargs(ctx))
        except Exception as e:
            raise translate_azure_error(e, bucket=bucket, key=object_name) from e
        return self._to_record(props)

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
        self._put(bucket, marker, b"", 0, DIRECTORY_CONTENT_TYPE, ctx)

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
