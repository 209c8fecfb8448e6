"""
Core types for the pykairos workflow runtime.

This package contains the building blocks stage handlers and the runtime
share:
- Commands: Call, FanOut, CreateHook, AwaitHook, Sleep, Complete, Fail
- StageContext: read-only view of a run given to stage handlers
- HookKind / HookCatalog: hook payload schemas and token routing
- parse_duration: "50ms" / "2h" style duration literals
- normalize_token: cleanup of hook tokens received from outside the process
- Exceptions raised by the runtime
"""

from pykairos.core.commands import (
    AwaitHook,
    Call,
    Command,
    Complete,
    CreateHook,
    Fail,
    FanOut,
    Sleep,
    StepFn,
)
from pykairos.core.context import StageContext
from pykairos.core.duration import Duration, parse_duration, to_seconds
from pykairos.core.errors import (
    HookNotFoundError,
    HookPayloadError,
    InvalidInputError,
    KairosError,
    NonDeterminismError,
    RunNotFoundError,
    WorkflowDefinitionError,
)
from pykairos.core.hook_kind import SLEEP, HookCatalog, HookKind
from pykairos.core.tokens import normalize_token

__all__ = [
    "AwaitHook",
    "Call",
    "Command",
    "Complete",
    "CreateHook",
    "Duration",
    "Fail",
    "FanOut",
    "HookCatalog",
    "HookKind",
    "HookNotFoundError",
    "HookPayloadError",
    "InvalidInputError",
    "KairosError",
    "NonDeterminismError",
    "RunNotFoundError",
    "SLEEP",
    "Sleep",
    "StageContext",
    "StepFn",
    "WorkflowDefinitionError",
    "normalize_token",
    "parse_duration",
    "to_seconds",
]
