"""Observability module for OpenTelemetry tracing and Prometheus metrics."""

from cuesync.observability.tracing import (
    add_span_attributes,
    get_meter,
    get_tracer,
    record_counter,
    record_histogram,
    setup_telemetry,
    shutdown_telemetry,
    trace_operation,
    traced,
)

__all__ = [
    "add_span_attributes",
    "get_meter",
    "get_tracer",
    "record_counter",
    "record_histogram",
    "setup_telemetry",
    "shutdown_telemetry",
    "trace_operation",
    "traced",
]
