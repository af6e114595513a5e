"""Virtual directory helpers shared by all backends.

Object stores have a flat key space. A "directory" is either a zero-length
marker object whose key ends with "/", or a name derived from the "/"
separated segments of the keys beneath it. These helpers keep the naming
rules identical across backends:

- a directory name always ends with exactly one "/";
- joining never introduces a double slash;
- the prefix being listed is never reported as its own child.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable

from fileservice.storage.models import FileObject

DELIMITER = "/"


def normalize_directory(name: str) -> str:
    """Return ``name`` with exactly one trailing "/". Empty stays empty."""
    stripped = name.rstrip(DELIMITER)
    if not stripped:
        return ""
    return stripped + DELIMITER


def normalize_prefix(prefix: str) -> str:
    """Normalize a directory prefix; an empty prefix means the bucket root."""
    return normalize_directory(prefix or "")


def parent_directory(object_path: str) -> str:
    """Return the parent directory of ``object_path`` without trailing "/".

    Root-level objects (and the root itself) have no parent: "" is returned.

    >>> parent_directory("a/b/c.txt")
    'a/b'
    >>> parent_directory("c.txt")
    ''
    """
    parent = posixpath.dirname(object_path.rstrip(DELIMITER))
    if parent in ("", ".", DELIMITER):
        return ""
    return parent.lstrip(DELIMITER)


def is_directory_key(name: str) -> bool:
    return name.endswith(DELIMITER)


def is_child_directory(name: str, prefix: str) -> bool:
    """True if directory ``name`` lies under ``prefix`` and is not the prefix itself."""
    return name.startswith(prefix) and len(name) > len(prefix)


def synthesize_directories(names: Iterable[str], prefix: str = "") -> list[FileObject]:
    """Derive directory records from the "/" segments of flat key names.

    Every ancestor path of every key ("a/", "a/b/", ...) is emitted once, in
    first-seen order, as long as it lies under ``prefix``.
    """
    seen: set[str] = set()
    dirs: list[FileObject] = []
    for name in names:
        parts = name.split(DELIMITER)
        for i in range(1, len(parts)):
            segments = [p for p in parts[:i] if p]
            if not segments:
                continue
            dir_path = DELIMITER.join(segments) + DELIMITER
            if dir_path in seen or not is_child_directory(dir_path, prefix):
                continue
            seen.add(dir_path)
            dirs.append(FileObject.directory(dir_path))
    return dirs


def dedupe_directories(records: Iterable[FileObject], prefix: str = "") -> list[FileObject]:
    """Drop repeated names and the prefix itself from native directory listings.

    Names that already end in "/" are kept as listed, so a real common prefix
    such as "a//" stays distinct from "a/".
    """
    seen: set[str] = set()
    result: list[FileObject] = []
    for record in records:
        name = record.name if is_directory_key(record.name) else normalize_directory(record.name)
        if not name or name in seen or not is_child_directory(name, prefix):
            continue
        seen.add(name)
        if name != record.name or not record.is_dir:
            record = FileObject.directory(name, last_modified=record.last_modified)
        result.append(record)
    return result
