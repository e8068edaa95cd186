"""
Sequential stage pipeline with static progress checkpoints.

A pipeline is a fixed, ordered list of named stages. Every stage is mandatory
and runs exactly once per invocation, in declaration order. Each stage sees
the submitted document, a read-only view of all prior stage outputs keyed by
stage name, and the reference context fetched once before the first stage.

Progress is reported through a callback:
- `(first stage, 0)` before anything runs
- after stage k completes, `(name of stage k+1, checkpoint[k])`, or the final
  stage's name with the last checkpoint (always 100) once everything is done

A failure anywhere aborts the run; there is no partial success.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector, histogram
from ..observability.tracing import span, trace_span
from ..rag.context import ReferenceContext, ReferenceContextProvider
from .exceptions import ContextFetchError, StageExecutionError

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int], Any]
ResultBuilder = Callable[[Any, Mapping[str, Any]], Any]


class PipelineStage(ABC):
    """Abstract base class for pipeline stages."""

    def __init__(self, name: str, dependencies: list[str] | None = None):
        self.name = name
        self.dependencies = dependencies or []

    @abstractmethod
    async def execute(
        self, document: Any, outputs: Mapping[str, Any], context: ReferenceContext
    ) -> Any:
        """Produce this stage's output from the document and prior outputs."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class FunctionStage(PipelineStage):
    """Pipeline stage backed by a plain coroutine function."""

    def __init__(
        self,
        name: str,
        func: Callable[[Any, Mapping[str, Any], ReferenceContext], Awaitable[Any]],
        dependencies: list[str] | None = None,
    ):
        super().__init__(name, dependencies)
        self.func = func

    async def execute(
        self, document: Any, outputs: Mapping[str, Any], context: ReferenceContext
    ) -> Any:
        return await self.func(document, outputs, context)


@dataclass
class StageResult:
    """Timing record of one completed stage."""

    stage_name: str
    duration: float
    output: Any = None


@dataclass
class PipelineRun:
    """Everything one pipeline invocation produced."""

    pipeline_name: str
    result: Any
    outputs: dict[str, Any]
    stages: list[StageResult] = field(default_factory=list)
    total_duration: float = 0.0


def default_checkpoints(stage_count: int) -> list[int]:
    """Evenly spaced checkpoints ending at 100."""
    return [round(100 * (i + 1) / stage_count) for i in range(stage_count)]


class Pipeline:
    """
    Ordered, dependency-checked pipeline of analysis stages.

    Dependencies are declarative: a stage may only depend on stages declared
    before it, which is verified at construction. At run time every stage
    receives all prior outputs regardless of what it declared.
    """

    def __init__(
        self,
        name: str,
        stages: list[PipelineStage],
        context_provider: ReferenceContextProvider,
        percent_checkpoints: list[int] | None = None,
        result_builder: ResultBuilder | None = None,
    ):
        if not stages:
            raise ValueError(f"Pipeline '{name}' needs at least one stage")

        self.name = name
        self.stages = list(stages)
        self.context_provider = context_provider
        self.percent_checkpoints = list(
            percent_checkpoints or default_checkpoints(len(self.stages))
        )
        self.result_builder = result_builder

        self._validate_stages()
        self._validate_checkpoints()

    def _validate_stages(self) -> None:
        seen: set[str] = set()
        for stage in self.stages:
            if stage.name in seen:
                raise ValueError(f"Duplicate stage name '{stage.name}' in pipeline '{self.name}'")
            for dep in stage.dependencies:
                if dep not in seen:
                    raise ValueError(
                        f"Stage '{stage.name}' depends on '{dep}', "
                        f"which is not declared before it in pipeline '{self.name}'"
                    )
            seen.add(stage.name)

    def _validate_checkpoints(self) -> None:
        checkpoints = self.percent_checkpoints
        if len(checkpoints) != len(self.stages):
            raise ValueError(
                f"Pipeline '{self.name}' has {len(self.stages)} stages "
                f"but {len(checkpoints)} percent checkpoints"
            )
        if any(b <= a for a, b in zip(checkpoints, checkpoints[1:], strict=False)):
            raise ValueError("Percent checkpoints must be strictly increasing")
        if checkpoints[0] <= 0 or checkpoints[-1] != 100:
            raise ValueError("Percent checkpoints must start above 0 and end at 100")

    @property
    def first_stage(self) -> str:
        return self.stages[0].name

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def _checkpoint_after(self, index: int) -> tuple[str, int]:
        """Progress tuple to report once the stage at `index` has completed."""
        next_index = min(index + 1, len(self.stages) - 1)
        return self.stages[next_index].name, self.percent_checkpoints[index]

    async def _fetch_context(self) -> ReferenceContext:
        try:
            segments = await self.context_provider.fetch_reference_context()
        except ContextFetchError:
            raise
        except Exception as e:
            raise ContextFetchError(f"Failed to load reference context: {e}") from e

        context = ReferenceContext.from_segments(segments)
        logger.info(
            f"Loaded {len(context.segments)} reference segments ({len(context.text)} characters)"
        )
        return context

    @trace_span("pipeline.run")
    async def run(self, document: Any, on_progress: ProgressCallback | None = None) -> Any:
        """Run every stage in order and return the assembled result."""
        return (await self.execute(document, on_progress)).result

    async def execute(
        self, document: Any, on_progress: ProgressCallback | None = None
    ) -> PipelineRun:
        """Run every stage in order, keeping per-stage outputs and timings."""
        start_time = time.perf_counter()

        def report(stage: str, percent: int) -> None:
            if on_progress is not None:
                on_progress(stage, percent)

        logger.info(f"Starting pipeline '{self.name}' with {len(self.stages)} stages")
        report(self.first_stage, 0)

        context = await self._fetch_context()

        outputs: dict[str, Any] = {}
        stage_results: list[StageResult] = []
        metrics = get_metrics_collector()

        for index, stage in enumerate(self.stages):
            logger.info(f"Stage {index + 1}/{len(self.stages)}: {stage.name}", stage=stage.name)
            stage_start = time.perf_counter()

            try:
                with span("pipeline.stage", {"stage": stage.name, "position": index + 1}):
                    output = await stage.execute(document, MappingProxyType(outputs), context)
            except StageExecutionError:
                metrics.record_stage(stage.name, time.perf_counter() - stage_start, False)
                raise
            except Exception as e:
                duration = time.perf_counter() - stage_start
                metrics.record_stage(stage.name, duration, False)
                logger.error(f"Stage '{stage.name}' failed: {e}", stage=stage.name)
                raise StageExecutionError(stage.name, str(e)) from e

            duration = time.perf_counter() - stage_start
            metrics.record_stage(stage.name, duration, True)
            logger.timed(f"Stage '{stage.name}' completed", duration * 1000, stage=stage.name)

            outputs[stage.name] = output
            stage_results.append(StageResult(stage.name, duration, output))
            report(*self._checkpoint_after(index))

        frozen_outputs = MappingProxyType(outputs)
        result = (
            self.result_builder(document, frozen_outputs)
            if self.result_builder
            else dict(outputs)
        )

        total_duration = time.perf_counter() - start_time
        histogram("pipeline_duration_seconds").record(total_duration, {"pipeline": self.name})
        logger.info(f"Pipeline '{self.name}' completed in {total_duration:.2f}s")

        return PipelineRun(
            pipeline_name=self.name,
            result=result,
            outputs=outputs,
            stages=stage_results,
            total_duration=total_duration,
        )
