"""Core data models for durable workflow runs.

Defines types for run and hook state tracking, checkpoints, and retry
behavior.

Design: Dependency-Free Models
These types have no dependencies on core, executor or storage modules to
prevent circular imports and enable clean layering.
"""

from pykairos.models.hook import Hook
from pykairos.models.retry import (
    FatalError,
    RetryableError,
    RetryPolicy,
    StepCancelledError,
    StepError,
)
from pykairos.models.run import Checkpoint, StepRecord, WorkflowRun, utcnow
from pykairos.models.status import ErrorKind, HookState, RunStatus

__all__ = [
    "Checkpoint",
    "ErrorKind",
    "FatalError",
    "Hook",
    "HookState",
    "RetryableError",
    "RetryPolicy",
    "RunStatus",
    "StepCancelledError",
    "StepError",
    "StepRecord",
    "WorkflowRun",
    "utcnow",
]
