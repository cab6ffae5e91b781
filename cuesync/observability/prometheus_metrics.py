"""Prometheus metrics for cuesync.

All metrics live on one dedicated ``CollectorRegistry`` so the engine never
touches the process-wide default registry.

Metrics exposed:
    - cuesync_sync_attempts_total: Delivery attempts by platform and status
    - cuesync_sync_duration_milliseconds: Per-target delivery time
    - cuesync_preservation_score: Preservation score per delivery
    - cuesync_capsules_extracted_total: Capsules created by source platform
    - cuesync_extraction_fallbacks_total: Degraded analyses by analysis name
    - cuesync_queue_depth: Capsules waiting in the sync queue
    - cuesync_queue_batches_total: Queue batches processed
    - cuesync_capsule_syncs_total: Whole-capsule sync outcomes by status
    - cuesync_errors_total: Errors by component, kind and severity
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from threading import Lock
from typing import Literal, ParamSpec

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

_registry: CollectorRegistry = CollectorRegistry()
_registry_lock = Lock()
_enabled = True

_P = ParamSpec("_P")

_LATENCY_BUCKETS_MS = (10.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0, 30000.0, 60000.0)
_SCORE_BUCKETS = (10, 20, 30, 40, 50, 60, 70, 80, 90, 100)

sync_attempts_total: Counter
sync_duration_ms: Histogram
preservation_score: Histogram
capsules_extracted_total: Counter
extraction_fallbacks_total: Counter
queue_depth: Gauge
queue_batches_total: Counter
capsule_syncs_total: Counter
errors_total: Counter


def _register_metrics(registry: CollectorRegistry) -> None:
    """Create every metric on ``registry`` and bind it to the module globals."""
    global sync_attempts_total, sync_duration_ms, preservation_score
    global capsules_extracted_total, extraction_fallbacks_total
    global queue_depth, queue_batches_total, capsule_syncs_total, errors_total

    sync_attempts_total = Counter(
        name="cuesync_sync_attempts_total",
        documentation="Delivery attempts by target platform and status",
        labelnames=["platform", "status"],
        registry=registry,
    )
    sync_duration_ms = Histogram(
        name="cuesync_sync_duration_milliseconds",
        documentation="Per-target delivery time in milliseconds",
        labelnames=["platform"],
        buckets=_LATENCY_BUCKETS_MS,
        registry=registry,
    )
    preservation_score = Histogram(
        name="cuesync_preservation_score",
        documentation="Context preservation score per delivery",
        labelnames=["platform"],
        buckets=_SCORE_BUCKETS,
        registry=registry,
    )
    capsules_extracted_total = Counter(
        name="cuesync_capsules_extracted_total",
        documentation="Capsules created by source platform",
        labelnames=["source_platform"],
        registry=registry,
    )
    extraction_fallbacks_total = Counter(
        name="cuesync_extraction_fallbacks_total",
        documentation="Analyses that fell back to heuristics",
        labelnames=["analysis"],
        registry=registry,
    )
    queue_depth = Gauge(
        name="cuesync_queue_depth",
        documentation="Capsules waiting in the sync queue",
        registry=registry,
    )
    queue_batches_total = Counter(
        name="cuesync_queue_batches_total",
        documentation="Sync queue batches processed",
        registry=registry,
    )
    capsule_syncs_total = Counter(
        name="cuesync_capsule_syncs_total",
        documentation="Whole-capsule sync outcomes by aggregate status",
        labelnames=["status"],
        registry=registry,
    )
    errors_total = Counter(
        name="cuesync_errors_total",
        documentation="Errors by component, kind and severity",
        labelnames=["component", "kind", "severity"],
        registry=registry,
    )


_register_metrics(_registry)


def get_metrics_registry() -> CollectorRegistry:
    """Shared registry for all cuesync metrics."""
    return _registry


def set_metrics_enabled(enabled: bool) -> None:
    """Turn recording on or off. Disabled helpers are no-ops."""
    global _enabled
    _enabled = enabled


def metrics_enabled() -> bool:
    return _enabled


def _when_enabled(func: Callable[_P, None]) -> Callable[_P, None]:
    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> None:
        if _enabled:
            func(*args, **kwargs)

    return wrapper


# ============================================================================
# Recording helpers
# ============================================================================


@_when_enabled
def record_sync_attempt(
    platform: str,
    success: bool,
    duration_ms: float,
    score: int | None = None,
) -> None:
    """Record one per-target delivery."""
    sync_attempts_total.labels(platform=platform, status="success" if success else "failure").inc()
    sync_duration_ms.labels(platform=platform).observe(duration_ms)
    if score is not None:
        preservation_score.labels(platform=platform).observe(score)


@_when_enabled
def record_capsule_sync(status: str) -> None:
    capsule_syncs_total.labels(status=status).inc()


@_when_enabled
def record_capsule_extracted(source_platform: str) -> None:
    capsules_extracted_total.labels(source_platform=source_platform).inc()


@_when_enabled
def record_extraction_fallback(analysis: str) -> None:
    extraction_fallbacks_total.labels(analysis=analysis).inc()


@_when_enabled
def update_queue_depth(depth: int) -> None:
    queue_depth.set(depth)


@_when_enabled
def record_queue_batch() -> None:
    queue_batches_total.inc()


@_when_enabled
def increment_errors(
    component: Literal["extractor", "semantic", "orchestrator", "queue", "store", "provider"],
    kind: str,
    severity: str = "medium",
) -> None:
    """Increment the error counter.

    Args:
        component: Component that observed the error
        kind: Error kind (an ``ErrorKind`` value or exception class name)
        severity: Error severity level
    """
    errors_total.labels(component=component, kind=kind, severity=severity).inc()


# ============================================================================
# Exposition and test utilities
# ============================================================================


def generate_metrics() -> bytes:
    """Metrics in Prometheus text exposition format."""
    return generate_latest(get_metrics_registry())


def reset_all_metrics() -> None:
    """Replace the registry and recreate every metric at zero.

    Primarily useful for testing.
    """
    global _registry
    with _registry_lock:
        _registry = CollectorRegistry()
        _register_metrics(_registry)
    logger.debug("All Prometheus metrics reset to zero")


def get_metric_summary() -> dict[str, dict[str, float]]:
    """Current sample values keyed by sample name then label string.

    Label strings use the exposition format (``key="value",...``); unlabeled
    samples use the empty string.
    """
    summary: dict[str, dict[str, float]] = {}
    for family in get_metrics_registry().collect():
        for sample in family.samples:
            labels = ",".join(f'{k}="{v}"' for k, v in sorted(sample.labels.items()))
            summary.setdefault(sample.name, {})[labels] = sample.value
    return summary
