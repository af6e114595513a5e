"""Prefix-scoped bulk delete."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fileservice.storage.context import OperationContext
from fileservice.storage.errors import ObjectStorageError, OperationCancelledError
from fileservice.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class BulkDeleteResult:
    """Names deleted and per-object failure messages. No rollback is attempted."""

    deleted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"deleted": list(self.deleted), "errors": list(self.errors)}


def delete_prefix(
    store: ObjectStore,
    bucket: str,
    prefix: str,
    *,
    ctx: OperationContext | None = None,
) -> BulkDeleteResult:
    """Delete every object whose name starts with ``prefix``, one at a time.

    A failure to delete one object is recorded as
    ``"Failed to delete <name>: <error>"`` and the loop continues. A listing
    failure or cancellation propagates to the caller.
    """
    result = BulkDeleteResult()
    for record in store.list(bucket, prefix, ctx=ctx):
        try:
            store.delete(bucket, record.name, ctx=ctx)
        except OperationCancelledError:
            raise
        except ObjectStorageError as e:
            logger.warning("Bulk delete failed: bucket=%s key=%s error=%s", bucket, record.name, e)
            result.errors.append(f"Failed to delete {record.name}: {e}")
            continue
        result.deleted.append(record.name)

    logger.info(
        "Bulk delete complete: bucket=%s prefix=%s deleted=%d errors=%d",
        bucket,
        prefix,
        len(result.deleted),
        len(result.errors),
    )
    return result
