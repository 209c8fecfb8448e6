"""
WorkflowRun, Checkpoint and StepRecord.

A WorkflowRun is the durable record of one workflow invocation. Its
Checkpoint holds everything needed to continue execution deterministically:
the program counter (next stage), the committed state, and the ordered log
of completed steps.

Design principles:
- Plain dataclasses, mutated only by the Runtime
- JSON-friendly (to_dict/from_dict) so any backend can persist them
- Datetimes are timezone-aware UTC
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pykairos.models.status import ErrorKind, RunStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class StepRecord:
    """
    One committed step execution.

    The key identifies the call site inside the workflow (stage name, plus
    the worker index for fan-out calls) and is what replay looks up.
    """

    key: str
    step_name: str
    input_hash: int
    attempts: int
    output: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    completed_at: datetime = field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "step_name": self.step_name,
            "input_hash": self.input_hash,
            "attempts": self.attempts,
            "output": self.output,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "completed_at": self.completed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepRecord:
        kind = data.get("error_kind")
        return cls(
            key=data["key"],
            step_name=data["step_name"],
            input_hash=data["input_hash"],
            attempts=data["attempts"],
            output=data.get("output"),
            error=data.get("error"),
            error_kind=ErrorKind(kind) if kind else None,
            completed_at=_dt(data.get("completed_at")) or utcnow(),
        )


@dataclass
class Checkpoint:
    """
    Resumption point of a run.

    Attributes:
        stage: Next stage to interpret (the program counter). Kept at the
            last interpreted stage once the run is terminal.
        sequence: Number of stage transitions committed so far.
        state: Values committed by earlier stages, keyed by ``save_as``.
        steps: Ordered log of committed step executions.
        waiting_on: Token of the hook the run is suspended on, if any.
    """

    stage: str | None
    sequence: int = 0
    state: dict[str, Any] = field(default_factory=dict)
    steps: list[StepRecord] = field(default_factory=list)
    waiting_on: str | None = None

    def find_step(self, key: str) -> StepRecord | None:
        for record in self.steps:
            if record.key == key:
                return record
        return None

    def advance(self, then: str, save_as: str | None = None, value: Any = None) -> None:
        """Commit a stage's value and move the program counter."""
        if save_as is not None:
            self.state[save_as] = value
        self.stage = then
        self.sequence += 1
        self.waiting_on = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "sequence": self.sequence,
            "state": copy.deepcopy(self.state),
            "steps": [record.to_dict() for record in self.steps],
            "waiting_on": self.waiting_on,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        return cls(
            stage=data.get("stage"),
            sequence=data.get("sequence", 0),
            state=copy.deepcopy(data.get("state") or {}),
            steps=[StepRecord.from_dict(r) for r in data.get("steps") or []],
            waiting_on=data.get("waiting_on"),
        )


@dataclass
class WorkflowRun:
    """
    Durable record of one workflow invocation.

    Lifecycle: created by Runtime.start() with status RUNNING; mutated after
    every committed stage; terminal once COMPLETED or FAILED.
    """

    run_id: str
    workflow_name: str
    input: Any
    checkpoint: Checkpoint
    status: RunStatus = RunStatus.RUNNING
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_name": self.workflow_name,
            "input": copy.deepcopy(self.input),
            "checkpoint": self.checkpoint.to_dict(),
            "status": self.status.value,
            "result": copy.deepcopy(self.result),
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowRun:
        return cls(
            run_id=data["run_id"],
            workflow_name=data["workflow_name"],
            input=copy.deepcopy(data.get("input")),
            checkpoint=Checkpoint.from_dict(data["checkpoint"]),
            status=RunStatus(data["status"]),
            result=copy.deepcopy(data.get("result")),
            error=data.get("error"),
            created_at=_dt(data.get("created_at")) or utcnow(),
            updated_at=_dt(data.get("updated_at")) or utcnow(),
        )

    def __repr__(self) -> str:
        return (
            f"WorkflowRun(run_id={self.run_id!r}, workflow={self.workflow_name!r}, "
            f"status={self.status}, stage={self.checkpoint.stage!r})"
        )
