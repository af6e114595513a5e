"""Object storage error types.

Every backend adapter translates its provider's exceptions into this taxonomy
so callers never see raw SDK error types:

- ObjectNotFoundError: the object/key (or bucket) does not exist.
- InvalidArgumentError: the bucket or key is malformed.
- StorageBackendError: transport, auth or any unexpected provider fault.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        bucket: Bucket/container associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object (or its bucket) does not exist."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class InvalidArgumentError(ObjectStorageError):
    """Raised when a bucket name or object key is rejected as malformed."""

    def __init__(
        self,
        message: str = "Invalid bucket or key",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class PathTraversalError(InvalidArgumentError):
    """Raised when a key contains path traversal sequences.

    Only backends that map keys onto a real filesystem raise this.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    The provider exception is kept on ``cause`` so it can be logged, but it is
    never re-raised to callers as-is.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
        self.cause = cause


class OperationCancelledError(StorageBackendError):
    """Raised when an operation's context was cancelled or its deadline passed."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
