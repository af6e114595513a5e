"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this module only installs
the single stream handler on the root logger (and the uvicorn loggers) once at
startup.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")


def parse_level(level: str | int) -> int:
    """Translate "debug"/"INFO"/20 style levels; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: str | int = "info",
    json_format: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install one stream handler on the root logger.

    Args:
        level: Log level name or number.
        json_format: Emit one JSON object per record instead of plain text.
        stream: Output stream (default: stdout).

    Returns:
        The configured root logger.
    """
    formatter: logging.Formatter
    if json_format:
        formatter = JsonFormatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(formatter)

    numeric_level = parse_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers = [handler]

    for name in _UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.setLevel(numeric_level)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    return root_logger
