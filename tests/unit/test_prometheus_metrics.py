"""Unit tests for Prometheus metrics collection."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY as DEFAULT_REGISTRY

from cuesync.observability import prometheus_metrics


@pytest.fixture(autouse=True)
def reset_metrics_before_each_test():
    """Reset all metrics around each test to ensure isolation."""
    prometheus_metrics.reset_all_metrics()
    yield
    prometheus_metrics.set_metrics_enabled(True)
    prometheus_metrics.reset_all_metrics()


class TestSyncMetrics:
    """Test suite for delivery metrics."""

    def test_record_sync_attempt(self):
        """Test attempts, latency and score are recorded per platform."""
        prometheus_metrics.record_sync_attempt("claude", True, 120.0, score=80)
        prometheus_metrics.record_sync_attempt("claude", False, 40.0)

        metrics = prometheus_metrics.get_metric_summary()

        attempts = metrics["cuesync_sync_attempts_total"]
        assert attempts['platform="claude",status="success"'] == 1.0
        assert attempts['platform="claude",status="failure"'] == 1.0
        assert metrics["cuesync_sync_duration_milliseconds_count"]['platform="claude"'] == 2.0
        assert metrics["cuesync_preservation_score_count"]['platform="claude"'] == 1.0

    def test_capsule_sync_status(self):
        prometheus_metrics.record_capsule_sync("partial")

        metrics = prometheus_metrics.get_metric_summary()
        assert metrics["cuesync_capsule_syncs_total"]['status="partial"'] == 1.0

    def test_errors_by_component(self):
        """Test error counter labels."""
        prometheus_metrics.increment_errors("provider", "TIMEOUT_ERROR", "medium")

        metrics = prometheus_metrics.get_metric_summary()
        errors = metrics["cuesync_errors_total"]
        assert errors['component="provider",kind="TIMEOUT_ERROR",severity="medium"'] == 1.0


class TestQueueMetrics:
    """Test suite for queue metrics."""

    def test_queue_depth_and_batches(self):
        prometheus_metrics.update_queue_depth(7)
        prometheus_metrics.record_queue_batch()
        prometheus_metrics.record_queue_batch()

        metrics = prometheus_metrics.get_metric_summary()
        assert metrics["cuesync_queue_depth"][""] == 7.0
        assert metrics["cuesync_queue_batches_total"][""] == 2.0


class TestMetricsRegistry:
    """Test suite for registry handling."""

    def test_dedicated_registry(self):
        """Test metrics never land on the process-wide default registry."""
        assert prometheus_metrics.get_metrics_registry() is not DEFAULT_REGISTRY
        assert DEFAULT_REGISTRY.get_sample_value("cuesync_queue_batches_total") is None

    def test_exposition_format(self):
        prometheus_metrics.record_capsule_extracted("chatgpt")

        output = prometheus_metrics.generate_metrics().decode()

        assert 'cuesync_capsules_extracted_total{source_platform="chatgpt"} 1.0' in output

    def test_reset(self):
        """Test reset brings counters back to zero."""
        prometheus_metrics.record_extraction_fallback("tone")
        prometheus_metrics.reset_all_metrics()

        metrics = prometheus_metrics.get_metric_summary()
        assert metrics.get("cuesync_extraction_fallbacks_total", {}) == {}

    def test_disabled_helpers_are_noops(self):
        """Test the enable switch gates every helper."""
        prometheus_metrics.set_metrics_enabled(False)
        prometheus_metrics.record_queue_batch()
        prometheus_metrics.set_metrics_enabled(True)
        prometheus_metrics.record_queue_batch()

        metrics = prometheus_metrics.get_metric_summary()
        assert prometheus_metrics.metrics_enabled()
        assert metrics["cuesync_queue_batches_total"][""] == 1.0
