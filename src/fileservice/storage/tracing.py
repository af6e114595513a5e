"""OpenTelemetry tracing for storage operations.

Security:
    - Never export raw object keys in span attributes (keys may embed user
      data); only a SHA256 of the key is attached for correlation.
    - No credentials or endpoints in any span attribute.
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from fileservice.observability.tracing import is_tracing_enabled

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_KEY_KWARGS = ("object_name", "object_path", "prefix")


def _extract_key(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
    if args and isinstance(args[0], str):
        return args[0]
    for name in _KEY_KWARGS:
        value = kwargs.get(name)
        if isinstance(value, str):
            return value
    return ""


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    Emits a ``fileservice.object_store.<operation>`` span when tracing is
    enabled; otherwise calls straight through.

    Args:
        operation: Operation name (e.g., "upload", "download", "list").
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, bucket: str, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, bucket, *args, **kwargs)

            tracer = trace.get_tracer("fileservice.object_store")
            span_name = f"fileservice.object_store.{operation}"

            with tracer.start_as_current_span(span_name) as span:
                key = _extract_key(args, kwargs)
                span.set_attribute("fileservice.bucket", bucket)
                key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                span.set_attribute("fileservice.object_key_sha256", key_sha256)
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))

                try:
                    result = func(self, bucket, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes (sizes and counts only) to a span."""
    try:
        from fileservice.storage.models import FileObject

        if isinstance(result, FileObject):
            span.set_attribute("fileservice.object_size_bytes", result.size)
            span.set_attribute("fileservice.object_content_type", result.content_type)
            span.set_attribute("fileservice.object_is_dir", result.is_dir)
        elif isinstance(result, list):
            span.set_attribute("fileservice.result_count", len(result))
    except Exception as e:
        logger.debug("Failed to add result attributes to %s span: %s", operation, e)
