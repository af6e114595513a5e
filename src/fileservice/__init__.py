"""fileservice - uniform file-object API over multiple object storage services."""

__version__ = "1.0.0"
