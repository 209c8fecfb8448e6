"""Status enumerations for run and hook lifecycle tracking.

Defines the lifecycle states of a workflow run and of the hooks
(suspension points) a run may wait on.
"""

from enum import Enum


class RunStatus(Enum):
    """Status of a workflow run.

    Lifecycle:
        RUNNING → SUSPENDED → PENDING → RUNNING → COMPLETED/FAILED

    A run that resumes from a hook goes back to PENDING until a drive
    picks it up again.
    """

    PENDING = "PENDING"
    """Run is scheduled to continue, waiting for a drive to pick it up."""

    RUNNING = "RUNNING"
    """Run is being interpreted."""

    SUSPENDED = "SUSPENDED"
    """Run is waiting on a hook or a sleep.

    No task is held while suspended. When the hook resolves or expires,
    the run moves back to PENDING.
    """

    COMPLETED = "COMPLETED"
    """Run finished and its result is recorded."""

    FAILED = "FAILED"
    """Run aborted with a fatal error; checkpoint kept for audit."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no more work possible)."""
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)

    def __str__(self) -> str:
        return self.value


class HookState(Enum):
    """State of a hook.

    Lifecycle:
        PENDING → RESOLVED | EXPIRED

    Exactly one transition out of PENDING ever succeeds.
    """

    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    EXPIRED = "EXPIRED"

    @property
    def is_settled(self) -> bool:
        return self is not HookState.PENDING

    def __str__(self) -> str:
        return self.value


class ErrorKind(Enum):
    """Classification of a step failure."""

    RETRYABLE = "RETRYABLE"
    FATAL = "FATAL"

    def __str__(self) -> str:
        return self.value
