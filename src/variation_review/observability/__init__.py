"""
Observability for the variation review service.

- Structured logging: single-line `key=value` records with trace IDs
- Tracing: OpenTelemetry spans via the `trace_span` decorator
- Metrics: OpenTelemetry counters and histograms for jobs, stages and streams

Usage:
    >>> from variation_review.observability import get_logger, trace_span
    >>>
    >>> logger = get_logger(__name__)
    >>>
    >>> @trace_span("stage.execute")
    >>> async def run_stage(name: str) -> None:
    ...     logger.info("Running stage", stage=name)
"""

from .logging import get_logger, get_trace_id, set_trace_id, setup_logging, trace_context
from .metrics import counter, histogram, setup_metrics, timer, up_down_counter
from .tracing import TracingManager, get_tracer, trace_span

__all__ = [
    "get_logger",
    "get_trace_id",
    "set_trace_id",
    "setup_logging",
    "trace_context",
    "counter",
    "histogram",
    "up_down_counter",
    "setup_metrics",
    "timer",
    "TracingManager",
    "get_tracer",
    "trace_span",
]
