"""OpenTelemetry setup for the file service.

Tracing is off unless FILESERVICE_OTEL_ENABLED is truthy. Settings are read
from the environment when ``configure_tracing`` runs:

    FILESERVICE_OTEL_ENABLED          "1"/"true"/"yes" turns tracing on
    FILESERVICE_REQUIRE_OTEL          fail startup when the provider cannot be built
    FILESERVICE_OTEL_SERVICE_NAME     service.name resource attribute (default "fileservice")
    FILESERVICE_OTEL_EXPORTER         "otlp" (default) or "console"
    FILESERVICE_OTEL_EXPORTER_OTLP_ENDPOINT
    FILESERVICE_OTEL_EXPORTER_OTLP_PROTOCOL   "grpc" (default) or "http"
    FILESERVICE_OTEL_RESOURCE_ATTRS   extra resource attributes, "k=v,k2=v2"
    FILESERVICE_OTEL_TEST_CAPTURE     keep spans in memory for tests

The OTLP exporters and the FastAPI instrumentation come from the "otel" extra.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor

logger = logging.getLogger(__name__)

OTEL_ENABLED_ENV = "FILESERVICE_OTEL_ENABLED"
_ENV_PREFIX = "FILESERVICE_"
_TRUTHY = frozenset({"1", "true", "yes"})

# TracerProvider can be installed only once per process; these track what we set up
_provider: Any = None
_memory_exporter: Any = None


class TracingConfigError(Exception):
    """The tracer provider could not be built while FILESERVICE_REQUIRE_OTEL is set."""


def _flag(name: str) -> bool:
    return os.environ.get(_ENV_PREFIX + name, "").strip().lower() in _TRUTHY


def _setting(name: str, default: str = "") -> str:
    return os.environ.get(_ENV_PREFIX + name, default).strip()


def is_tracing_enabled() -> bool:
    return _flag("OTEL_ENABLED")


def _parse_resource_attrs(raw: str) -> dict[str, str]:
    """Parse "k=v,k2=v2"; pairs without "=" are ignored."""
    attrs: dict[str, str] = {}
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        if sep:
            attrs[key.strip()] = value.strip()
    return attrs


@dataclass(frozen=True)
class TracingSettings:
    service_name: str
    exporter: str
    endpoint: str
    protocol: str
    resource_attrs: dict[str, str]
    test_capture: bool
    required: bool

    @classmethod
    def from_env(cls) -> TracingSettings:
        return cls(
            service_name=_setting("OTEL_SERVICE_NAME", "fileservice"),
            exporter=_setting("OTEL_EXPORTER", "otlp").lower(),
            endpoint=_setting("OTEL_EXPORTER_OTLP_ENDPOINT"),
            protocol=_setting("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc").lower(),
            resource_attrs=_parse_resource_attrs(_setting("OTEL_RESOURCE_ATTRS")),
            test_capture=_flag("OTEL_TEST_CAPTURE"),
            required=_flag("REQUIRE_OTEL"),
        )

    @property
    def exporter_label(self) -> str:
        return "in-memory" if self.test_capture else self.exporter


def _span_processor(settings: TracingSettings) -> SpanProcessor:
    """Pick the exporter for ``settings`` and wrap it in a span processor."""
    global _memory_exporter

    from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

    if settings.test_capture:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )

        _memory_exporter = InMemorySpanExporter()
        return SimpleSpanProcessor(_memory_exporter)

    if settings.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter

        return SimpleSpanProcessor(ConsoleSpanExporter())

    kwargs: dict[str, Any] = {"endpoint": settings.endpoint} if settings.endpoint else {}
    if settings.protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
    return BatchSpanProcessor(OTLPSpanExporter(**kwargs))


def configure_tracing() -> bool:
    """Install the global tracer provider once; return whether tracing is active.

    Raises:
        TracingConfigError: If the provider cannot be built and
            FILESERVICE_REQUIRE_OTEL is set.
    """
    global _provider

    if not is_tracing_enabled():
        logger.debug("Tracing disabled (%s not set)", OTEL_ENABLED_ENV)
        return False

    settings = TracingSettings.from_env()
    if _provider is not None:
        return True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        attrs = {"service.name": settings.service_name, **settings.resource_attrs}
        provider = TracerProvider(resource=Resource.create(attrs))
        provider.add_span_processor(_span_processor(settings))
        trace.set_tracer_provider(provider)
        _provider = provider
    except Exception as e:
        logger.error("Tracing setup failed: %s", e)
        if settings.required:
            raise TracingConfigError(f"Tracing is required but could not start: {e}") from e
        return False

    logger.info(
        "Tracing enabled: service=%s exporter=%s",
        settings.service_name,
        settings.exporter_label,
    )
    return True


def instrument_fastapi(app: Any) -> None:
    """Attach request spans to ``app`` when tracing is on; /health is excluded."""
    if not is_tracing_enabled():
        return
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
    except Exception as e:
        logger.warning("FastAPI instrumentation unavailable: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Finished spans held by the in-memory exporter, oldest first."""
    if _memory_exporter is None:
        return []
    return list(_memory_exporter.get_finished_spans())


def clear_test_spans() -> None:
    if _memory_exporter is not None:
        _memory_exporter.clear()


def reset_tracing() -> None:
    """Drop captured spans between tests.

    The installed provider and its in-memory exporter stay in place, so a
    later ``configure_tracing`` call reuses them.
    """
    clear_test_spans()
