"""
Executor module - Runtime engine for durable workflows.

This module contains the execution components:
- step: StepExecutor (retries, Fatal/Retryable classification)
- fanout: Coordinator (concurrent dispatch, ordered join)
- runtime: Runtime (state-machine interpreter, hooks, recovery)
- outcome: RunOutcome (Completed/Suspended/RunFailed) and ResumeResult
"""

from pykairos.executor.fanout import Coordinator, WorkerResult
from pykairos.executor.outcome import (
    Completed,
    ResumeResult,
    RunFailed,
    RunOutcome,
    Suspended,
)
from pykairos.executor.runtime import Runtime
from pykairos.executor.step import (
    Failed,
    StepExecutor,
    StepOutcome,
    Succeeded,
    hash_input,
)

__all__ = [
    # Step execution
    "StepExecutor",
    "StepOutcome",
    "Succeeded",
    "Failed",
    "hash_input",
    # Fan-out
    "Coordinator",
    "WorkerResult",
    # Runtime
    "Runtime",
    "RunOutcome",
    "Completed",
    "Suspended",
    "RunFailed",
    "ResumeResult",
]
