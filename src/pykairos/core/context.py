"""Read-only view of a run handed to stage handlers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class StageContext:
    """
    What a stage handler may look at when deciding its next command.

    Only committed data is exposed: the run id, the start input, and the
    values earlier stages saved. Handlers must derive their command from
    these alone so that re-interpreting a stage after a restart yields the
    same command.

    Attributes:
        run_id: Identifier of the run being interpreted.
        workflow_name: Name of the workflow.
        stage: Name of the stage being interpreted.
        input: The input the run was started with.
        state: Committed values keyed by ``save_as``.
    """

    run_id: str
    workflow_name: str
    stage: str
    input: Any
    state: Mapping[str, Any]

    @classmethod
    def build(
        cls, run_id: str, workflow_name: str, stage: str, input: Any, state: dict[str, Any]
    ) -> StageContext:
        return cls(
            run_id=run_id,
            workflow_name=workflow_name,
            stage=stage,
            input=input,
            state=MappingProxyType(state),
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)
