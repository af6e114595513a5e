"""Object storage data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DIRECTORY_CONTENT_TYPE = "application/directory"

_RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_rfc3339(value: datetime | None) -> str:
    """Format a timestamp as an RFC 3339 UTC string (seconds precision).

    Naive datetimes are assumed to already be UTC. ``None`` formats as "".
    """
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime(_RFC3339_FORMAT)


@dataclass(frozen=True)
class FileObject:
    """One stored object or virtual directory marker.

    Attributes:
        name: Full key within the bucket. Directory records end with "/".
        size: Size in bytes; directories report 0.
        content_type: MIME type of the content.
        last_modified: Backend-reported modification time, if known.
        metadata: User-defined key/value pairs. Never None.
        is_dir: True for directory markers and synthesized directories.
    """

    name: str
    size: int = 0
    content_type: str = DEFAULT_CONTENT_TYPE
    last_modified: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    is_dir: bool = False

    @classmethod
    def directory(cls, name: str, last_modified: datetime | None = None) -> FileObject:
        """Build a directory record for ``name`` (which must end with "/")."""
        return cls(
            name=name,
            size=0,
            content_type=DIRECTORY_CONTENT_TYPE,
            last_modified=last_modified,
            is_dir=True,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON interchange form."""
        return {
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "last_modified": format_rfc3339(self.last_modified),
            "metadata": dict(self.metadata),
            "is_dir": self.is_dir,
        }
