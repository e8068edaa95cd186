"""
Tests for structured logging, trace ids, metrics and spans.
"""

import logging

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from variation_review.agents.factory import STAGE_NAMES
from variation_review.core.job_store import JobStore
from variation_review.observability.logging import (
    StructuredFormatter,
    clear_trace_id,
    get_logger,
    get_trace_id,
    set_trace_id,
    trace_context,
)
from variation_review.observability.metrics import (
    get_metrics_collector,
    setup_metrics,
    timer,
)
from variation_review.observability.tracing import span, trace_span


def metric_values(reader: InMemoryMetricReader) -> dict[str, float]:
    values = {}
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                points = list(metric.data.data_points)
                if not points:
                    continue
                if hasattr(points[0], "value"):
                    values[metric.name] = sum(p.value for p in points)
                else:
                    values[metric.name] = sum(p.count for p in points)
    return values


@pytest.fixture
def reader():
    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])
    setup_metrics(provider.get_meter("variation_review.tests"))
    yield reader
    provider.shutdown()


class TestStructuredLogging:
    """Test trace id propagation and formatting."""

    def test_trace_id_roundtrip(self):
        set_trace_id("job-123")
        assert get_trace_id() == "job-123"
        clear_trace_id()
        assert get_trace_id() is None

    def test_trace_context_restores_previous_id(self):
        set_trace_id("outer")
        with trace_context("job-1") as bound:
            assert bound == "job-1"
            assert get_trace_id() == "job-1"
        assert get_trace_id() == "outer"

    def test_records_carry_trace_id_and_fields(self, caplog):
        log = get_logger("variation_review.tests")
        set_trace_id("job-abc")

        with caplog.at_level(logging.INFO, logger="variation_review.tests"):
            log.info("Stage completed", stage="risk-assessment")

        record = caplog.records[-1]
        assert record.trace_id == "job-abc"
        assert record.stage == "risk-assessment"

    def test_reserved_fields_are_dropped(self, caplog):
        log = get_logger("variation_review.tests")

        with caplog.at_level(logging.INFO, logger="variation_review.tests"):
            log.info("Extracted text", filename="upload.pdf", pages=3)

        record = caplog.records[-1]
        assert record.pages == 3
        assert record.filename != "upload.pdf"

    def test_formatter_output(self):
        set_trace_id("job-fmt")
        record = logging.LogRecord(
            "variation_review.core.pipeline", logging.INFO, __file__, 1, "Pipeline done", None, None
        )
        record.ms = 12.5
        record.stage = "report-synthesis"

        line = StructuredFormatter().format(record)

        assert "level=INFO" in line
        assert "trace=job-fmt" in line
        assert "mod=pipeline" in line
        assert "ms=12.5" in line
        assert 'msg="Pipeline done"' in line
        assert "stage=report-synthesis" in line

    def test_get_logger_is_cached(self):
        assert get_logger("variation_review.x") is get_logger("variation_review.x")


class TestMetrics:
    """Test job lifecycle metrics."""

    def test_noop_collector_when_not_configured(self):
        collector = get_metrics_collector()
        collector.counter("jobs_created_total").add(1)
        collector.record_stage("risk-assessment", 0.5, success=False)

    def test_job_lifecycle_counters(self, reader):
        store = JobStore(initial_stage=STAGE_NAMES[0])
        done = store.create()
        failed = store.create()
        store.set_result(done, {})
        store.set_error(failed, "boom")

        values = metric_values(reader)

        assert values["variation_review_jobs_created_total"] == 2
        assert values["variation_review_jobs_completed_total"] == 1
        assert values["variation_review_jobs_failed_total"] == 1

    def test_stage_recording(self, reader):
        collector = get_metrics_collector()
        collector.record_stage("risk-assessment", 0.2, success=True)
        collector.record_stage("risk-assessment", 0.3, success=False)

        values = metric_values(reader)

        assert values["variation_review_stage_duration_seconds"] == 2
        assert values["variation_review_stage_failures_total"] == 1

    def test_timer_records_histogram(self, reader):
        with timer("model_call_duration_seconds", {"schema": "RiskAssessment"}):
            pass

        assert metric_values(reader)["variation_review_model_call_duration_seconds"] == 1


class TestTracing:
    """Test span helpers without an installed provider."""

    def test_span_reraises(self):
        with pytest.raises(ValueError):
            with span("test.span", {"stage": "x"}):
                raise ValueError("boom")

    @pytest.mark.asyncio
    async def test_trace_span_wraps_async_functions(self):
        @trace_span("test.async")
        async def double(x):
            return x * 2

        assert await double(21) == 42

    def test_trace_span_wraps_sync_functions(self):
        @trace_span()
        def triple(x):
            return x * 3

        assert triple(3) == 9
