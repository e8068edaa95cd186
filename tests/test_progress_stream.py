"""
Tests for per-job progress subscriptions.
"""

import asyncio

import pytest

from variation_review.agents.factory import STAGE_NAMES
from variation_review.agents.schemas import Level, RiskAssessment
from variation_review.core.exceptions import JobNotFoundError
from variation_review.core.progress_stream import (
    EXPIRED_MESSAGE,
    ProgressStream,
    is_terminal_message,
)


@pytest.fixture
def stream(store):
    return ProgressStream(store, poll_interval=0.001)


async def collect(messages):
    return [message async for message in messages]


class TestSubscription:
    """Test opening subscriptions."""

    def test_unknown_job_raises(self, stream):
        with pytest.raises(JobNotFoundError) as exc_info:
            stream.subscribe("missing")
        assert exc_info.value.job_id == "missing"

    def test_evicted_job_raises(self, stream, store, clock):
        job_id = store.create()
        clock.advance(store.ttl_seconds + 1)
        store.sweep()

        with pytest.raises(JobNotFoundError) as exc_info:
            stream.subscribe(job_id)
        assert exc_info.value.job_id == job_id

    @pytest.mark.asyncio
    async def test_completed_job_yields_progress_then_done(self, stream, store):
        job_id = store.create()
        store.set_result(job_id, {"score": 80})

        messages = await collect(stream.subscribe(job_id))

        assert messages == [
            {"stage": STAGE_NAMES[0], "percent": 100},
            {"done": True, "evaluation": {"score": 80}},
        ]

    @pytest.mark.asyncio
    async def test_pydantic_result_is_serialized_by_alias(self, stream, store):
        job_id = store.create()
        store.set_result(
            job_id,
            RiskAssessment(overall_risk=Level.LOW, approval_probability=90.0),
        )

        messages = await collect(stream.subscribe(job_id))

        evaluation = messages[-1]["evaluation"]
        assert evaluation["overallRisk"] == "Low"
        assert evaluation["approvalProbability"] == 90.0
        assert evaluation["keyRiskFactors"] == []


class TestProgressSequence:
    """Test ordering and termination of a live job's stream."""

    @pytest.mark.asyncio
    async def test_monotonic_progress_and_single_terminal(self, stream, store):
        job_id = store.create()

        async def advance():
            for i, percent in enumerate([15, 30, 50, 65, 80]):
                await asyncio.sleep(0.005)
                store.update_progress(job_id, STAGE_NAMES[i + 1], percent)
            await asyncio.sleep(0.005)
            store.update_progress(job_id, STAGE_NAMES[-1], 100)
            store.set_result(job_id, {"ok": True})

        writer = asyncio.create_task(advance())
        messages = await collect(stream.subscribe(job_id))
        await writer

        progress = [m["percent"] for m in messages if "percent" in m]
        assert progress == sorted(set(progress))
        assert progress[0] == 0
        assert progress[-1] == 100
        assert [is_terminal_message(m) for m in messages].count(True) == 1
        assert is_terminal_message(messages[-1])
        assert messages[-1] == {"done": True, "evaluation": {"ok": True}}

    @pytest.mark.asyncio
    async def test_intermediate_checkpoints_may_be_coalesced(self, stream, store):
        job_id = store.create()
        store.update_progress(job_id, STAGE_NAMES[3], 50)

        messages = stream.subscribe(job_id)
        first = await anext(messages)
        await messages.aclose()

        assert first == {"stage": STAGE_NAMES[3], "percent": 50}

    @pytest.mark.asyncio
    async def test_failed_job_yields_error(self, stream, store):
        job_id = store.create()
        store.update_progress(job_id, STAGE_NAMES[1], 15)
        store.set_error(job_id, "Stage 'change-classification' failed: quota exceeded")

        messages = await collect(stream.subscribe(job_id))

        assert messages[-1] == {
            "error": True,
            "message": "Stage 'change-classification' failed: quota exceeded",
        }
        assert "done" not in messages[-1]

    @pytest.mark.asyncio
    async def test_job_expiring_mid_stream(self, stream, store, clock):
        job_id = store.create()
        messages = stream.subscribe(job_id)

        first = await anext(messages)
        assert first["percent"] == 0

        clock.advance(store.ttl_seconds + 1)
        store.sweep()

        rest = await collect(messages)
        assert rest == [{"error": True, "expired": True, "message": EXPIRED_MESSAGE}]

    @pytest.mark.asyncio
    async def test_disconnect_ends_without_terminal_message(self, stream, store):
        job_id = store.create()
        checks = iter([False, True])

        async def is_disconnected():
            return next(checks, True)

        messages = await collect(stream.subscribe(job_id, is_disconnected))

        assert messages == [{"stage": STAGE_NAMES[0], "percent": 0}]
        assert store.get(job_id) is not None

    @pytest.mark.asyncio
    async def test_independent_subscribers_each_get_a_terminal(self, stream, store):
        job_id = store.create()

        async def finish():
            await asyncio.sleep(0.01)
            store.set_result(job_id, {"ok": True})

        writer = asyncio.create_task(finish())
        first, second = await asyncio.gather(
            collect(stream.subscribe(job_id)), collect(stream.subscribe(job_id))
        )
        await writer

        assert first[-1] == second[-1] == {"done": True, "evaluation": {"ok": True}}

    @pytest.mark.asyncio
    async def test_concurrent_jobs_stay_on_their_own_subscriptions(self, stream, store):
        plans = {
            store.create(): ([(STAGE_NAMES[1], 15), (STAGE_NAMES[3], 50)], {"job": "first"}),
            store.create(): ([(STAGE_NAMES[2], 30), (STAGE_NAMES[4], 65)], {"job": "second"}),
        }

        async def advance(job_id, steps, result):
            for stage, percent in steps:
                await asyncio.sleep(0.005)
                store.update_progress(job_id, stage, percent)
            await asyncio.sleep(0.005)
            store.set_result(job_id, result)

        writers = [
            asyncio.create_task(advance(job_id, steps, result))
            for job_id, (steps, result) in plans.items()
        ]
        streams = await asyncio.gather(*(collect(stream.subscribe(job_id)) for job_id in plans))
        await asyncio.gather(*writers)

        for (steps, result), messages in zip(plans.values(), streams, strict=True):
            own = {(STAGE_NAMES[0], 0), *steps}
            seen = {(m["stage"], m["percent"]) for m in messages if "percent" in m}
            finished_at = max(steps, key=lambda step: step[1])[0]
            assert seen <= own | {(finished_at, 100)}
            assert messages[-1] == {"done": True, "evaluation": result}
