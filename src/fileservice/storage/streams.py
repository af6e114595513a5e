"""Download stream wrapper returned by ObjectStore.download()."""

from __future__ import annotations

import io
import logging
from collections.abc import Callable, Iterator
from typing import Any, Protocol

from fileservice.storage.context import OperationContext, check_context
from fileservice.storage.errors import ObjectStorageError, StorageBackendError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class _Readable(Protocol):
    def read(self, size: int = -1, /) -> bytes: ...


class ObjectStream(io.RawIOBase):
    """Single-reader, single-use byte stream over a provider response.

    The caller owns the stream and must close it exactly once; close() is
    idempotent so a second call is harmless. Provider read errors are
    translated into StorageBackendError. When an OperationContext is attached,
    every read checks it first.

    Args:
        raw: Provider body exposing read(size).
        on_close: Releases the provider connection. Called at most once.
        ctx: Optional operation context checked on every read.
        bucket: Bucket name (for error context).
        key: Object key (for error context).
    """

    def __init__(
        self,
        raw: _Readable,
        *,
        on_close: Callable[[], Any] | None = None,
        ctx: OperationContext | None = None,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__()
        self._raw = raw
        self._on_close = on_close
        self._ctx = ctx
        self.bucket = bucket
        self.key = key

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed object stream")
        check_context(self._ctx, bucket=self.bucket, key=self.key)
        try:
            data = self._raw.read(size) if size is not None and size >= 0 else self._raw.read()
        except ObjectStorageError:
            raise
        except Exception as e:
            raise StorageBackendError(
                message=f"Failed to read object stream: {e}",
                bucket=self.bucket,
                key=self.key,
                cause=e,
            ) from e
        return data or b""

    def readall(self) -> bytes:
        return b"".join(self.iter_chunks())

    def readinto(self, buffer: Any) -> int:
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[: len(data)] = data
        return len(data)

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the remaining body in chunks of at most ``chunk_size`` bytes."""
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._on_close is not None:
                self._on_close()
        except Exception as e:
            logger.debug("Error releasing stream for key=%s: %s", self.key, e)
        finally:
            self._on_close = None
            super().close()


class IteratorReader:
    """Adapts an iterator of byte chunks into a read(size) interface.

    Used for providers whose download API hands back a chunk iterator.
    """

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self._buffer = b""
        self._exhausted = False

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            parts = [self._buffer, *self._chunks]
            self._buffer = b""
            self._exhausted = True
            return b"".join(parts)

        while len(self._buffer) < size and not self._exhausted:
            try:
                self._buffer += next(self._chunks)
            except StopIteration:
                self._exhausted = True

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data
