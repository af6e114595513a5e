"""Observability helpers (OpenTelemetry tracing)."""
