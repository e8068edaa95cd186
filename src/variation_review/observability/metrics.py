"""
Job and pipeline metrics on top of the OpenTelemetry metrics API.

Instruments are created lazily from the configured meter. When metrics are
not set up a no-op meter is used, so recording is always safe.
"""

import time
from contextlib import contextmanager
from typing import Any

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Counter, Histogram, Meter, NoOpMeter, UpDownCounter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from .logging import get_logger

logger = get_logger(__name__)

METRIC_PREFIX = "variation_review"


class MetricsCollector:
    """Centralized metrics collection and management."""

    def __init__(self, meter: Meter):
        self.meter = meter
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._up_down: dict[str, UpDownCounter] = {}

        self._setup_default_metrics()

    def _setup_default_metrics(self):
        """Setup default application metrics."""
        # Job lifecycle
        self.counter("jobs_created_total", "Jobs created")
        self.counter("jobs_completed_total", "Jobs that reached completed")
        self.counter("jobs_failed_total", "Jobs that reached failed")
        self.counter("jobs_expired_total", "Jobs evicted by the TTL sweep")

        # Pipeline
        self.counter("stage_failures_total", "Stage executions that raised")
        self.histogram("stage_duration_seconds", "Stage execution duration", "s")
        self.histogram("pipeline_duration_seconds", "Full pipeline duration", "s")

        # Streaming
        self.up_down_counter("active_streams", "Open progress subscriptions")

    def counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Get or create a counter metric."""
        if name not in self._counters:
            self._counters[name] = self.meter.create_counter(
                f"{METRIC_PREFIX}_{name}", description=description, unit=unit
            )
        return self._counters[name]

    def histogram(self, name: str, description: str = "", unit: str = "1") -> Histogram:
        """Get or create a histogram metric."""
        if name not in self._histograms:
            self._histograms[name] = self.meter.create_histogram(
                f"{METRIC_PREFIX}_{name}", description=description, unit=unit
            )
        return self._histograms[name]

    def up_down_counter(self, name: str, description: str = "", unit: str = "1") -> UpDownCounter:
        if name not in self._up_down:
            self._up_down[name] = self.meter.create_up_down_counter(
                f"{METRIC_PREFIX}_{name}", description=description, unit=unit
            )
        return self._up_down[name]

    def record_stage(self, stage: str, duration: float, success: bool) -> None:
        """Record one stage execution."""
        attributes = {"stage": stage, "success": str(success).lower()}
        self._histograms["stage_duration_seconds"].record(duration, attributes)
        if not success:
            self._counters["stage_failures_total"].add(1, {"stage": stage})


# Global metrics collector instance
_metrics_collector: MetricsCollector | None = None


def setup_metrics(meter: Meter) -> MetricsCollector:
    """Setup global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def teardown_metrics() -> None:
    """Drop the global collector; later recordings go to a no-op meter."""
    global _metrics_collector
    _metrics_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector, falling back to a no-op meter."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(NoOpMeter(METRIC_PREFIX))
    return _metrics_collector


# Convenience functions
def counter(name: str, description: str = "", unit: str = "1") -> Counter:
    """Get or create a counter metric."""
    return get_metrics_collector().counter(name, description, unit)


def histogram(name: str, description: str = "", unit: str = "1") -> Histogram:
    """Get or create a histogram metric."""
    return get_metrics_collector().histogram(name, description, unit)


def up_down_counter(name: str, description: str = "", unit: str = "1") -> UpDownCounter:
    return get_metrics_collector().up_down_counter(name, description, unit)


@contextmanager
def timer(metric_name: str, attributes: dict[str, Any] | None = None):
    """Context manager for timing operations into a `<name>` histogram."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        histogram(metric_name, "Operation duration", "s").record(duration, attributes or {})


def create_meter_provider(
    service_name: str, service_version: str, otlp_endpoint: str | None = None
) -> MeterProvider:
    """SDK meter provider, exporting over OTLP when an endpoint is given."""
    resource = Resource.create({"service.name": service_name, "service.version": service_version})
    readers = []
    if otlp_endpoint:
        readers.append(PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=otlp_endpoint)))
    return MeterProvider(resource=resource, metric_readers=readers)
