"""Tests for the fan-out Coordinator and FanOut commands in the runtime."""

import asyncio

import pytest

from pykairos.core import Call, Complete, FanOut, StageContext
from pykairos.decorators import stage, step, workflow
from pykairos.executor import Coordinator, StepExecutor, WorkerResult
from pykairos.models import FatalError, RunStatus


class InstantExecutor(StepExecutor):
    async def _pause(self, seconds: float) -> None:
        pass


def delayed(name: str, seconds: float, log: list):
    @step(name=name, max_retries=1)
    async def run(input):
        await asyncio.sleep(seconds)
        log.append(name)
        return {"worker": name, "input": input}

    return run


# ==============================================================================
# Coordinator
# ==============================================================================


@pytest.mark.asyncio
async def test_results_follow_dispatch_order_not_completion_order():
    finished: list[str] = []
    coordinator = Coordinator(InstantExecutor())

    results = await coordinator.fan_out(
        [
            Call(delayed("slow", 0.05, finished), 1),
            Call(delayed("medium", 0.02, finished), 2),
            Call(delayed("fast", 0.0, finished), 3),
        ]
    )

    assert finished == ["fast", "medium", "slow"]
    assert [r.worker_name for r in results] == ["slow", "medium", "fast"]
    assert [r.output["input"] for r in results] == [1, 2, 3]


@pytest.mark.asyncio
async def test_workers_run_concurrently():
    """Three 100ms workers finish in well under 300ms."""
    coordinator = Coordinator(InstantExecutor())
    loop = asyncio.get_running_loop()

    start = loop.time()
    await coordinator.fan_out([Call(delayed(f"w{i}", 0.1, []), i) for i in range(3)])
    elapsed = loop.time() - start

    assert elapsed < 0.25


@pytest.mark.asyncio
async def test_failed_worker_does_not_abort_siblings():
    finished: list[str] = []

    @step(name="broken", max_retries=1)
    async def broken(input):
        raise FatalError("registry unavailable")

    coordinator = Coordinator(InstantExecutor())
    results = await coordinator.fan_out(
        [Call(broken), Call(delayed("ok", 0.01, finished), None)]
    )

    assert finished == ["ok"]
    assert not results[0].ok
    assert results[0].error == "registry unavailable"
    assert results[1].ok


@pytest.mark.asyncio
async def test_completed_workers_are_not_dispatched_again():
    finished: list[str] = []
    coordinator = Coordinator(InstantExecutor())
    seen = []

    async def on_result(index, call, outcome):
        seen.append(index)

    results = await coordinator.fan_out(
        [Call(delayed("a", 0, finished)), Call(delayed("b", 0, finished))],
        on_result=on_result,
        completed={0: WorkerResult("a", output="committed")},
    )

    assert finished == ["b"]
    assert seen == [1]
    assert results[0].output == "committed"


def test_worker_result_dict_round_trip():
    result = WorkerResult("legal_scout", error="timeout")
    assert WorkerResult.from_dict(result.to_dict()) == result


# ==============================================================================
# FanOut in a workflow
# ==============================================================================


@workflow(name="fan-out-required")
class RequiredFanOut:
    def __init__(self, fail_required: bool):
        self.fail_required = fail_required

    @step(max_retries=1)
    async def must_work(self, input):
        if self.fail_required:
            raise FatalError("required source down")
        return "fine"

    @step(max_retries=1)
    async def optional(self, input):
        raise FatalError("optional source down")

    @stage
    def fan(self, ctx: StageContext):
        return FanOut(
            [Call(self.must_work), Call(self.optional, required=False)],
            save_as="workers",
            then="finish",
        )

    @stage
    def finish(self, ctx: StageContext):
        return Complete(ctx.state["workers"])


@pytest.mark.asyncio
async def test_optional_failure_reaches_the_join(runtime):
    runtime.register(RequiredFanOut(fail_required=False))

    run_id = await runtime.start("fan-out-required")
    run = await runtime.wait(run_id, "5s")

    assert run.status is RunStatus.COMPLETED
    assert run.result[0] == {"worker_name": "must_work", "output": "fine", "error": None}
    assert run.result[1]["error"] == "optional source down"
    assert sorted(s.key for s in run.checkpoint.steps) == ["fan@0[0]", "fan@0[1]"]


@pytest.mark.asyncio
async def test_required_failure_fails_the_run(runtime):
    runtime.register(RequiredFanOut(fail_required=True))

    run_id = await runtime.start("fan-out-required")
    run = await runtime.wait(run_id, "5s")

    assert run.status is RunStatus.FAILED
    assert "required source down" in run.error
