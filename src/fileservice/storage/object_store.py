"""Storage contract that every backend adapter implements."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import BinaryIO

from fileservice.storage.context import OperationContext
from fileservice.storage.directories import normalize_directory, parent_directory
from fileservice.storage.errors import ObjectNotFoundError
from fileservice.storage.models import FileObject
from fileservice.storage.streams import ObjectStream

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    One concrete subclass per provider. Instances are constructed once at
    startup and shared by all requests, so implementations must not mutate
    their state after __init__.

    Every operation takes the bucket/container first and an optional
    OperationContext carrying the caller's deadline and cancel flag. Errors
    are always members of the fileservice.storage.errors taxonomy.

    Implementations:
    - MinIOObjectStore: MinIO / local-network object store
    - OSSObjectStore: Aliyun OSS (S3-compatible endpoint)
    - OBSObjectStore: Huawei Cloud OBS (S3-compatible endpoint)
    - AzureBlobObjectStore: Azure Blob Storage
    - FilesystemObjectStore: local filesystem (dev/test)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for logs and spans (e.g. "minio")."""
        ...

    @abstractmethod
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
        """Store an object, overwriting any existing object with the same name.

        Args:
            bucket: Bucket/container name.
            object_name: Full object key.
            stream: Readable binary stream with the content.
            size: Size hint in bytes; 0 or negative means unknown.
            content_type: MIME type; empty means application/octet-stream.
            ctx: Optional operation context.

        Raises:
            InvalidArgumentError: If the bucket or key is malformed.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def download(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> ObjectStream:
        """Open an object for reading.

        The caller owns the returned stream and must close it.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        """Delete an object.

        Deleting a missing key may or may not raise ObjectNotFoundError,
        depending on the provider.
        """
        ...

    @abstractmethod
    def list(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        """List every object whose name starts with ``prefix`` (recursively).

        Paginated providers are drained completely before returning.
        """
        ...

    @abstractmethod
    def get_object_info(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> FileObject:
        """Get object metadata without retrieving content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...

    @abstractmethod
    def create_directory(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        """Write a zero-length application/directory marker at ``object_name/``."""
        ...

    @abstractmethod
    def list_directories(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        """List directory records under ``prefix``, without duplicates."""
        ...

    def ensure_path_exists(
        self,
        bucket: str,
        object_path: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        """Make sure the marker for the parent directory of ``object_path`` exists.

        Idempotent: when the marker is already there nothing is written. A
        NotFound probe is the expected path and creates the marker; any other
        probe error propagates.
        """
        directory = parent_directory(object_path)
        if not directory:
            return

        marker = normalize_directory(directory)
        try:
            self.get_object_info(bucket, marker, ctx=ctx)
            return
        except ObjectNotFoundError:
            logger.debug(
                "Creating directory marker: backend=%s bucket=%s marker=%s",
                self.backend_name,
                bucket,
                marker,
            )

        self.create_directory(bucket, marker, ctx=ctx)
