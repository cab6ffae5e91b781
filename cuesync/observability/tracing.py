"""OpenTelemetry tracing setup for cuesync.

This module provides:
- Tracer/meter provider setup for the engine
- ``traced`` decorator and ``trace_operation`` context manager
- Counter/histogram helpers for OTel metrics

Before ``setup_telemetry`` runs, spans and instruments come from the API's
no-op providers, so library callers never have to configure tracing.
"""

from __future__ import annotations

import functools
import inspect
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

_INSTRUMENTATION_NAME = "cuesync"

_tracer_provider: TracerProvider | None = None
_meter_provider: MeterProvider | None = None


def setup_telemetry(
    service_name: str = "cuesync",
    environment: str = "development",
    enable_console_export: bool = False,
    sample_rate: float = 1.0,
) -> tuple[trace.Tracer, metrics.Meter]:
    """Setup OpenTelemetry tracing and metrics.

    Args:
        service_name: Name of the service
        environment: Environment (development, production)
        enable_console_export: Export spans to console for debugging
        sample_rate: Sampling rate (0.0 to 1.0, 1.0 = all traces)

    Returns:
        Tuple of (tracer, meter)
    """
    global _tracer_provider, _meter_provider

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "cuesync",
            "deployment.environment": environment,
        }
    )

    tracer_provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sample_rate))
    if enable_console_export:
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("✅ Console span export enabled")

    meter_provider = MeterProvider(resource=resource)

    _tracer_provider = tracer_provider
    _meter_provider = meter_provider

    logger.info(f"✅ Telemetry initialized: {service_name} ({environment})")
    logger.info(f"   Sampling rate: {sample_rate:.0%}")

    return get_tracer(), get_meter()


def get_tracer() -> trace.Tracer:
    """Tracer from the configured provider, or the global (no-op) one."""
    if _tracer_provider is not None:
        return _tracer_provider.get_tracer(_INSTRUMENTATION_NAME)
    return trace.get_tracer(_INSTRUMENTATION_NAME)


def get_meter() -> metrics.Meter:
    """Meter from the configured provider, or the global (no-op) one."""
    if _meter_provider is not None:
        return _meter_provider.get_meter(_INSTRUMENTATION_NAME)
    return metrics.get_meter(_INSTRUMENTATION_NAME)


def shutdown_telemetry() -> None:
    """Flush and shut down the providers created by ``setup_telemetry``."""
    global _tracer_provider, _meter_provider

    logger.info("Shutting down telemetry...")
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        _tracer_provider = None
    if _meter_provider is not None:
        _meter_provider.shutdown()
        _meter_provider = None
    logger.info("✅ Telemetry shutdown complete")


@contextmanager
def trace_operation(
    operation_name: str,
    attributes: dict[str, str | int | float] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for tracing an operation.

    Example:
        with trace_operation("sync_target", {"platform": "claude"}):
            text = await client.complete(prompt, config)
    """
    with get_tracer().start_as_current_span(
        operation_name,
        attributes=attributes or {},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            span.set_status(trace.StatusCode.OK)
        except Exception as e:
            span.record_exception(e)
            span.set_status(trace.StatusCode.ERROR, str(e))
            raise


def traced(
    operation_name: str | None = None,
    attributes: dict[str, str] | None = None,
) -> Callable:
    """Decorator to trace a sync or async function.

    Example:
        @traced("cuesync.extract")
        async def extract(self, turn): ...
    """

    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__qualname__}"
        span_attributes = {
            "function.name": func.__name__,
            "function.module": func.__module__,
            **(attributes or {}),
        }

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with trace_operation(name, span_attributes):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_operation(name, span_attributes):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator


def add_span_attributes(attributes: dict[str, str | int | float | bool]) -> None:
    """Add attributes to the current span."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.set_attributes(attributes)


def record_counter(
    name: str,
    value: int = 1,
    attributes: dict[str, str] | None = None,
) -> None:
    """Record an OTel counter increment."""
    counter = get_meter().create_counter(name, description=f"Counter for {name}")
    counter.add(value, attributes or {})


def record_histogram(
    name: str,
    value: float,
    attributes: dict[str, str] | None = None,
) -> None:
    """Record an OTel histogram observation."""
    histogram = get_meter().create_histogram(name, description=f"Histogram for {name}")
    histogram.record(value, attributes or {})
