"""
Global pytest configuration and fixtures for test isolation.

Module-level state (the process-wide job store, the API container, the
metrics collector and the cached settings) is reset around every test.
"""

from collections.abc import Callable, Mapping
from typing import Any
from unittest.mock import AsyncMock

import pytest

from variation_review.agents.factory import STAGE_NAMES
from variation_review.core.job_store import JobStore
from variation_review.core.pipeline import FunctionStage, Pipeline


def reset_all_global_state():
    """Reset every module-level singleton."""
    from variation_review.api.server import _reset_globals_for_tests
    from variation_review.config.settings import get_settings
    from variation_review.core.job_store import _reset_job_store_for_tests
    from variation_review.observability.logging import clear_trace_id
    from variation_review.observability.metrics import teardown_metrics

    _reset_globals_for_tests()
    _reset_job_store_for_tests()
    teardown_metrics()
    clear_trace_id()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def test_isolation():
    """Per-test isolation to ensure clean state for each test."""
    reset_all_global_state()
    yield
    reset_all_global_state()


class FakeClock:
    """Manually advanced clock for deterministic expiry tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> JobStore:
    """Job store with a 60 second TTL on a fake clock."""
    return JobStore(initial_stage=STAGE_NAMES[0], ttl_seconds=60.0, clock=clock)


@pytest.fixture
def context_provider() -> AsyncMock:
    provider = AsyncMock()
    provider.fetch_reference_context.return_value = ["Section 1 guidance", "Section 2 guidance"]
    return provider


@pytest.fixture
def make_stage() -> Callable[..., FunctionStage]:
    """
    Factory for stages backed by an AsyncMock.

    By default a stage returns `{"stage": name, "document": document}` so tests
    can tell which job produced an output. The mock is exposed as `stage.func`
    for call-count assertions.
    """

    def factory(
        name: str,
        dependencies: list[str] | None = None,
        error: Exception | None = None,
        output: Any = None,
    ) -> FunctionStage:
        async def run(document: Any, outputs: Mapping[str, Any], context: Any) -> Any:
            if error is not None:
                raise error
            if output is not None:
                return output
            return {"stage": name, "document": document}

        return FunctionStage(name, AsyncMock(side_effect=run), dependencies)

    return factory


@pytest.fixture
def six_stages(make_stage) -> list[FunctionStage]:
    """One recording stage per evaluation stage name."""
    return [make_stage(name) for name in STAGE_NAMES]


@pytest.fixture
def make_pipeline(context_provider) -> Callable[..., Pipeline]:
    def factory(stages: list, **kwargs) -> Pipeline:
        kwargs.setdefault("context_provider", context_provider)
        return Pipeline(name="test-pipeline", stages=stages, **kwargs)

    return factory
