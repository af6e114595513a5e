"""fileservice storage abstraction.

One contract (ObjectStore) over several object storage services, plus the
virtual-directory, archive and prefix-delete logic built on top of it.

Backends:
- MinIOObjectStore: MinIO / local-network object store
- OSSObjectStore: Aliyun OSS (S3-compatible endpoint)
- OBSObjectStore: Huawei Cloud OBS (S3-compatible endpoint)
- AzureBlobObjectStore: Azure Blob Storage
- FilesystemObjectStore: Local filesystem (dev/test)

The backend is chosen once at startup by fileservice.storage.factory.
"""

from fileservice.storage.context import OperationContext
from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    ObjectStorageError,
    OperationCancelledError,
    PathTraversalError,
    StorageBackendError,
)
from fileservice.storage.models import FileObject
from fileservice.storage.object_store import ObjectStore
from fileservice.storage.streams import ObjectStream

__all__ = [
    "FileObject",
    "InvalidArgumentError",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ObjectStore",
    "ObjectStream",
    "OperationCancelledError",
    "OperationContext",
    "PathTraversalError",
    "StorageBackendError",
]
