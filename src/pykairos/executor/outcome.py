"""
Run outcomes.

A drive of a run ends in exactly one of three ways, returned as a value:

- Completed: the workflow returned Complete(value).
- Suspended: the run is waiting on a hook or a sleep and holds no task.
- RunFailed: a fatal step failure, a Fail command, or a definition error.

Example:
    ```python
    outcome = await runtime.run(run_id)

    match outcome:
        case Completed(run_id, result):
            print(f"Run completed: {result}")
        case Suspended(run_id, token):
            print(f"Waiting on {token}")
        case RunFailed(run_id, error):
            print(f"Run failed: {error}")
    ```
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Completed:
    run_id: str
    result: Any = None

    def __str__(self) -> str:
        return f"Completed(run_id={self.run_id}, result={self.result!r})"


@dataclass(frozen=True)
class Suspended:
    """
    Run suspended, waiting for a hook resolution or its deadline.

    Attributes:
        token: Hook the run waits on.
        expires_at: Deadline of the hook, None for no deadline.
    """

    run_id: str
    token: str
    expires_at: datetime | None = None

    def __str__(self) -> str:
        return f"Suspended(run_id={self.run_id}, token={self.token!r})"


@dataclass(frozen=True)
class RunFailed:
    run_id: str
    error: str

    def __str__(self) -> str:
        return f"RunFailed(run_id={self.run_id}, error={self.error!r})"


RunOutcome = Completed | Suspended | RunFailed


@dataclass(frozen=True)
class ResumeResult:
    """Successful resume: the hook is resolved and its run is scheduled to continue."""

    run_id: str
    token: str
    kind: str

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "runId": self.run_id}
