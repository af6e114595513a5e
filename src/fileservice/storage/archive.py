"""Bulk ZIP archive of every object under a prefix.

The archive is produced incrementally: entries are written through
``zipfile`` into an in-memory chunk sink that is drained after every copied
chunk, so memory stays bounded by one read chunk plus zipfile's own buffers.
The output never needs to be seekable (ZIP data descriptors are used).
"""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, BinaryIO

from fileservice.storage.context import OperationContext
from fileservice.storage.directories import DELIMITER, is_directory_key, normalize_prefix
from fileservice.storage.errors import ObjectStorageError, OperationCancelledError
from fileservice.storage.models import FileObject
from fileservice.storage.object_store import ObjectStore
from fileservice.storage.streams import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_NAME = "archive.zip"
FAILURE_MANIFEST_NAME = "_failed.txt"

# ZIP timestamps cannot represent anything before 1980
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


@dataclass
class ArchiveReport:
    """Outcome of an archive run.

    Attributes:
        added: Entry names written to the archive, in order.
        failed: (object name, error message) pairs for skipped objects.
        truncated: Entry names left partially written by a mid-copy failure.
        manifest: Name of the failure manifest entry, if one was written.
    """

    added: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    truncated: list[str] = field(default_factory=list)
    manifest: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failed


class _ChunkSink(io.RawIOBase):
    """Write-only, non-seekable buffer that hands out what was written."""

    def __init__(self) -> None:
        super().__init__()
        self._chunks: list[bytes] = []

    def writable(self) -> bool:
        return True

    def write(self, b: Any) -> int:
        data = bytes(b)
        if data:
            self._chunks.append(data)
        return len(data)

    def drain(self) -> Iterator[bytes]:
        chunks, self._chunks = self._chunks, []
        yield from chunks


def archive_filename(prefix: str) -> str:
    """Download filename for an archive of ``prefix``.

    >>> archive_filename("reports/2024/")
    '2024.zip'
    >>> archive_filename("")
    'archive.zip'
    """
    base = posixpath.basename(prefix.rstrip(DELIMITER))
    if not base:
        return DEFAULT_ARCHIVE_NAME
    return f"{base}.zip"


def _zip_info(entry_name: str, record: FileObject) -> zipfile.ZipInfo:
    stamp = record.last_modified or datetime.now(UTC)
    date_time = max(stamp.timetuple()[:6], _ZIP_EPOCH)
    info = zipfile.ZipInfo(entry_name, date_time=date_time)
    info.compress_type = zipfile.ZIP_DEFLATED
    return info


def _manifest_name(report: ArchiveReport) -> str:
    """FAILURE_MANIFEST_NAME, prefixed with "_" until it clashes with no entry."""
    taken = set(report.added) | set(report.truncated)
    name = FAILURE_MANIFEST_NAME
    while name in taken:
        name = "_" + name
    return name


def _manifest_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=datetime.now(UTC).timetuple()[:6])
    info.compress_type = zipfile.ZIP_DEFLATED
    return info


def _failure_manifest(report: ArchiveReport) -> str:
    """One tab-separated "key, error" line per skipped object."""
    lines = ["# Objects that could not be archived (key\terror)"]
    lines.extend(f"{name}\t{error}" for name, error in report.failed)
    if report.truncated:
        lines.append("# Entries below are present but truncated; do not trust their content")
        lines.extend(report.truncated)
    return "\n".join(lines) + "\n"


def _record_failure(report: ArchiveReport, name: str, error: Exception) -> None:
    logger.warning("Skipping object in archive: key=%s error=%s", name, error)
    report.failed.append((name, str(error)))


def iter_prefix_archive(
    store: ObjectStore,
    bucket: str,
    prefix: str,
    *,
    ctx: OperationContext | None = None,
    report: ArchiveReport | None = None,
) -> Iterator[bytes]:
    """Yield a ZIP archive of every object under ``prefix``, chunk by chunk.

    Directory markers are skipped; each entry is named relative to the
    prefix. A download or copy failure for one object is logged, recorded in
    ``report`` and skipped; when anything was skipped, a trailing
    FAILURE_MANIFEST_NAME entry lists the failures and any entry left
    truncated by a mid-copy error. Cancellation aborts the whole archive, and
    a listing failure surfaces before the first chunk is produced.

    Args:
        store: Storage backend.
        bucket: Bucket name.
        prefix: Key prefix; a trailing "/" is added when missing.
        ctx: Optional operation context.
        report: Optional report collecting added and failed entries.
    """
    if report is None:
        report = ArchiveReport()
    prefix = normalize_prefix(prefix)
    records = store.list(bucket, prefix, ctx=ctx)

    sink = _ChunkSink()
    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for record in records:
            if record.is_dir or is_directory_key(record.name):
                continue
            entry_name = record.name[len(prefix) :]
            if not entry_name:
                continue

            try:
                source = store.download(bucket, record.name, ctx=ctx)
            except OperationCancelledError:
                raise
            except ObjectStorageError as e:
                _record_failure(report, record.name, e)
                continue

            try:
                with zf.open(_zip_info(entry_name, record), mode="w", force_zip64=True) as dest:
                    for chunk in source.iter_chunks(DEFAULT_CHUNK_SIZE):
                        dest.write(chunk)
                        yield from sink.drain()
            except OperationCancelledError:
                raise
            except ObjectStorageError as e:
                # The entry was closed with the bytes copied so far; it cannot be rewound
                _record_failure(report, record.name, e)
                report.truncated.append(entry_name)
                yield from sink.drain()
                continue
            finally:
                source.close()

            report.added.append(entry_name)
            yield from sink.drain()

        if report.failed:
            report.manifest = _manifest_name(report)
            zf.writestr(_manifest_info(report.manifest), _failure_manifest(report))
            yield from sink.drain()

    # Central directory is written on close
    yield from sink.drain()
    logger.info(
        "Archive complete: bucket=%s prefix=%s added=%d failed=%d",
        bucket,
        prefix,
        len(report.added),
        len(report.failed),
    )


def write_prefix_archive(
    store: ObjectStore,
    bucket: str,
    prefix: str,
    sink: BinaryIO,
    *,
    ctx: OperationContext | None = None,
) -> ArchiveReport:
    """Write the archive of ``prefix`` into ``sink`` and return its report."""
    report = ArchiveReport()
    for chunk in iter_prefix_archive(store, bucket, prefix, ctx=ctx, report=report):
        sink.write(chunk)
    return report
