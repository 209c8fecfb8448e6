"""Fan-out/consolidation: concurrent dispatch of independent step calls.

Join policy: wait for all. Every dispatched call runs to its own outcome
(with its own retries); a failed worker never cancels its siblings. The
joined list preserves dispatch order, and failed workers appear in it as
error payloads so a consolidation step can treat them as degraded data.
Whether a failed worker aborts the run is decided by the caller after the
join, from each call's ``required`` flag.

Concurrency vs Parallelism:
Fan-out uses asyncio.gather(), which gives concurrency (interleaved
execution) on one event loop. Steps must be non-blocking; blocking work
belongs in asyncio.to_thread().
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pykairos.core.commands import Call
from pykairos.executor.step import StepExecutor, StepOutcome, Succeeded

ResultCallback = Callable[[int, Call, StepOutcome], Awaitable[None]]


@dataclass(frozen=True)
class WorkerResult:
    """
    Outcome of one fan-out worker.

    Attributes:
        worker_name: Step name of the dispatched call.
        output: Step return value, None when the worker failed.
        error: Failure message, None when the worker succeeded.
    """

    worker_name: str
    output: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_outcome(cls, worker_name: str, outcome: StepOutcome) -> WorkerResult:
        if isinstance(outcome, Succeeded):
            return cls(worker_name, output=outcome.value)
        return cls(worker_name, error=outcome.error)

    def to_dict(self) -> dict[str, Any]:
        return {"worker_name": self.worker_name, "output": self.output, "error": self.error}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkerResult:
        return cls(data["worker_name"], data.get("output"), data.get("error"))


class Coordinator:
    """
    Dispatches step calls concurrently and joins on all of them.

    Example:
        ```python
        coordinator = Coordinator(StepExecutor())
        results = await coordinator.fan_out([
            Call(legal_scout, {"domain": "nike.com"}),
            Call(sector_analyst, {"domain": "nike.com"}),
            Call(trust_officer, {"domain": "nike.com"}),
        ])
        legal, sector, trust = results  # dispatch order, not completion order
        ```
    """

    def __init__(self, executor: StepExecutor | None = None):
        self.executor = executor or StepExecutor()

    async def fan_out(
        self,
        calls: Sequence[Call],
        on_result: ResultCallback | None = None,
        completed: Mapping[int, WorkerResult] | None = None,
    ) -> list[WorkerResult]:
        """
        Run every call concurrently and return their results in dispatch order.

        Args:
            calls: Step calls to dispatch.
            on_result: Awaited as each live worker finishes, with its index,
                call and outcome. The Runtime checkpoints each worker here.
            completed: Results already committed by an earlier attempt, keyed
                by index. Those workers are not dispatched again.
        """
        completed = completed or {}

        async def dispatch(index: int, call: Call) -> WorkerResult:
            if index in completed:
                return completed[index]
            outcome = await self.executor.execute(call.step, call.input, call.max_retries)
            if on_result is not None:
                await on_result(index, call, outcome)
            return WorkerResult.from_outcome(call.step_name, outcome)

        results = await asyncio.gather(*(dispatch(i, call) for i, call in enumerate(calls)))
        return list(results)
