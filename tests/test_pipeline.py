"""
Tests for the sequential stage pipeline.
"""

from unittest.mock import AsyncMock

import pytest

from variation_review.core.exceptions import ContextFetchError, StageExecutionError
from variation_review.core.pipeline import FunctionStage, Pipeline, default_checkpoints
from variation_review.rag.context import ReferenceContext


class TestPipelineExecution:
    """Test stage ordering, outputs and progress reporting."""

    @pytest.mark.asyncio
    async def test_progress_sequence(self, make_stage, make_pipeline):
        """Progress names the next stage after each completion and ends at 100."""
        stages = [make_stage("a"), make_stage("b"), make_stage("c")]
        pipeline = make_pipeline(stages, percent_checkpoints=[20, 60, 100])
        reported = []

        await pipeline.run("doc", on_progress=lambda s, p: reported.append((s, p)))

        assert reported == [("a", 0), ("b", 20), ("c", 60), ("c", 100)]

    @pytest.mark.asyncio
    async def test_stages_see_all_prior_outputs(self, make_pipeline):
        seen = {}

        def recorder(name):
            async def run(document, outputs, context):
                seen[name] = dict(outputs)
                return f"{name}-output"

            return FunctionStage(name, run)

        pipeline = make_pipeline([recorder("a"), recorder("b"), recorder("c")])
        result = await pipeline.run("doc")

        assert seen["a"] == {}
        assert seen["b"] == {"a": "a-output"}
        assert seen["c"] == {"a": "a-output", "b": "b-output"}
        assert result == {"a": "a-output", "b": "b-output", "c": "c-output"}

    @pytest.mark.asyncio
    async def test_prior_outputs_are_read_only(self, make_pipeline):
        async def mutate(document, outputs, context):
            outputs["injected"] = True

        pipeline = make_pipeline([FunctionStage("a", AsyncMock(return_value=1)), FunctionStage("b", mutate)])

        with pytest.raises(StageExecutionError) as exc_info:
            await pipeline.run("doc")
        assert exc_info.value.stage == "b"

    @pytest.mark.asyncio
    async def test_context_fetched_once_and_shared(self, make_stage, make_pipeline, context_provider):
        stages = [make_stage("a"), make_stage("b")]
        pipeline = make_pipeline(stages)

        await pipeline.run("doc")

        context_provider.fetch_reference_context.assert_awaited_once()
        first_context = stages[0].func.await_args.args[2]
        second_context = stages[1].func.await_args.args[2]
        assert isinstance(first_context, ReferenceContext)
        assert first_context is second_context
        assert first_context.text == "Section 1 guidance\n\nSection 2 guidance"

    @pytest.mark.asyncio
    async def test_execute_records_stage_timings(self, make_stage, make_pipeline):
        pipeline = make_pipeline([make_stage("a"), make_stage("b")])

        run = await pipeline.execute("doc")

        assert run.pipeline_name == "test-pipeline"
        assert [r.stage_name for r in run.stages] == ["a", "b"]
        assert all(r.duration >= 0 for r in run.stages)
        assert run.total_duration >= 0

    @pytest.mark.asyncio
    async def test_result_builder_assembles_result(self, make_stage, make_pipeline):
        def builder(document, outputs):
            return {"document": document, "stages": sorted(outputs)}

        pipeline = make_pipeline([make_stage("a"), make_stage("b")], result_builder=builder)

        assert await pipeline.run("doc") == {"document": "doc", "stages": ["a", "b"]}


class TestPipelineFailures:
    """Test that any failure aborts the whole run."""

    @pytest.mark.asyncio
    async def test_stage_failure_stops_later_stages(self, make_stage, make_pipeline):
        stages = [
            make_stage("a"),
            make_stage("b", error=RuntimeError("model unavailable")),
            make_stage("c"),
        ]
        pipeline = make_pipeline(stages, percent_checkpoints=[20, 60, 100])
        reported = []

        with pytest.raises(StageExecutionError) as exc_info:
            await pipeline.run("doc", on_progress=lambda s, p: reported.append((s, p)))

        assert exc_info.value.stage == "b"
        assert str(exc_info.value) == "Stage 'b' failed: model unavailable"
        assert stages[0].func.await_count == 1
        assert stages[1].func.await_count == 1
        assert stages[2].func.await_count == 0
        assert reported == [("a", 0), ("b", 20)]

    @pytest.mark.asyncio
    async def test_context_failure_runs_no_stage(self, make_stage, context_provider):
        context_provider.fetch_reference_context.side_effect = ContextFetchError("store offline")
        stage = make_stage("a")
        pipeline = Pipeline("p", [stage], context_provider)

        with pytest.raises(ContextFetchError, match="store offline"):
            await pipeline.run("doc")
        assert stage.func.await_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_context_error_is_wrapped(self, make_stage, context_provider):
        context_provider.fetch_reference_context.side_effect = OSError("disk gone")
        pipeline = Pipeline("p", [make_stage("a")], context_provider)

        with pytest.raises(ContextFetchError) as exc_info:
            await pipeline.run("doc")
        assert "disk gone" in str(exc_info.value)


class TestPipelineConstruction:
    """Test validation at construction time."""

    def test_empty_pipeline_rejected(self, context_provider):
        with pytest.raises(ValueError):
            Pipeline("p", [], context_provider)

    def test_duplicate_stage_names_rejected(self, make_stage, context_provider):
        with pytest.raises(ValueError, match="Duplicate"):
            Pipeline("p", [make_stage("a"), make_stage("a")], context_provider)

    def test_dependency_must_precede(self, make_stage, context_provider):
        with pytest.raises(ValueError, match="depends on 'b'"):
            Pipeline("p", [make_stage("a", ["b"]), make_stage("b")], context_provider)

    def test_valid_dependencies_accepted(self, make_stage, context_provider):
        pipeline = Pipeline(
            "p", [make_stage("a"), make_stage("b", ["a"]), make_stage("c", ["a", "b"])], context_provider
        )
        assert pipeline.first_stage == "a"
        assert pipeline.stage_names == ["a", "b", "c"]

    @pytest.mark.parametrize(
        "checkpoints",
        [[50, 100], [10, 20, 30], [0, 50, 100], [50, 50, 100], [60, 40, 100]],
    )
    def test_invalid_checkpoints_rejected(self, make_stage, context_provider, checkpoints):
        stages = [make_stage("a"), make_stage("b"), make_stage("c")]
        with pytest.raises(ValueError):
            Pipeline("p", stages, context_provider, percent_checkpoints=checkpoints)

    def test_default_checkpoints(self):
        assert default_checkpoints(6) == [17, 33, 50, 67, 83, 100]
        assert default_checkpoints(1) == [100]
