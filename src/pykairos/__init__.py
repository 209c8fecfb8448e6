"""
Kairos: durable workflow runtime for Python

Long-running business processes written as explicit state machines. Every
step result is committed before the next stage runs, so a run resumes
from its last checkpoint after a restart, fans out to concurrent workers,
and waits (for hours if needed) on human approvals delivered through hooks.

Design Pattern: Façade Pattern
This module re-exports the public API and hides the split between core
types, the executor and the storage backends.

Example:
    ```python
    import asyncio
    from pykairos import Call, Complete, InMemoryRunRegistry, Runtime, stage, step, workflow

    @workflow(name="greeting")
    class Greeting:
        @step(max_retries=3)
        async def fetch_name(self, input: dict) -> str:
            return await directory.lookup(input["userId"])

        @stage
        def lookup(self, ctx):
            return Call(self.fetch_name, {"userId": ctx.input["userId"]},
                        save_as="name", then="finish")

        @stage
        def finish(self, ctx):
            return Complete(f"hello {ctx.state['name']}")

    async def main():
        runtime = Runtime(InMemoryRunRegistry())
        runtime.register(Greeting())
        run_id = await runtime.start("greeting", {"userId": "u1"})
        run = await runtime.wait(run_id)
        print(run.result)

    asyncio.run(main())
    ```
"""

# Core types
from pykairos.core import (
    SLEEP,
    AwaitHook,
    Call,
    Command,
    Complete,
    CreateHook,
    Fail,
    FanOut,
    HookCatalog,
    HookKind,
    HookNotFoundError,
    HookPayloadError,
    InvalidInputError,
    KairosError,
    NonDeterminismError,
    RunNotFoundError,
    Sleep,
    StageContext,
    WorkflowDefinitionError,
    normalize_token,
    parse_duration,
)

# Models
from pykairos.models import (
    Checkpoint,
    ErrorKind,
    FatalError,
    Hook,
    HookState,
    RetryableError,
    RetryPolicy,
    RunStatus,
    StepCancelledError,
    StepError,
    StepRecord,
    WorkflowRun,
)

# Storage (Adapter pattern)
from pykairos.storage import RunRegistry, StorageError
from pykairos.storage.memory import InMemoryRunRegistry
from pykairos.storage.sqlite import SqliteRunRegistry

# Decorators
from pykairos.decorators import stage, step, workflow

# Execution
from pykairos.executor import (
    Completed,
    Coordinator,
    Failed,
    ResumeResult,
    RunFailed,
    RunOutcome,
    Runtime,
    StepExecutor,
    StepOutcome,
    Succeeded,
    Suspended,
    WorkerResult,
)

# Configuration
from pykairos.config import Settings, configure_logging, get_settings

# Version
__version__ = "0.1.0"

__all__ = [
    # Commands and stage context
    "Call",
    "FanOut",
    "CreateHook",
    "AwaitHook",
    "Sleep",
    "Complete",
    "Fail",
    "Command",
    "StageContext",
    # Hooks
    "HookKind",
    "HookCatalog",
    "SLEEP",
    "normalize_token",
    "parse_duration",
    # Errors
    "KairosError",
    "WorkflowDefinitionError",
    "RunNotFoundError",
    "HookNotFoundError",
    "HookPayloadError",
    "InvalidInputError",
    "NonDeterminismError",
    "StorageError",
    "StepError",
    "RetryableError",
    "FatalError",
    "StepCancelledError",
    # Models
    "RetryPolicy",
    "RunStatus",
    "HookState",
    "ErrorKind",
    "WorkflowRun",
    "Checkpoint",
    "StepRecord",
    "Hook",
    # Storage
    "RunRegistry",
    "InMemoryRunRegistry",
    "SqliteRunRegistry",
    # Decorators
    "workflow",
    "stage",
    "step",
    # Execution
    "Runtime",
    "RunOutcome",
    "Completed",
    "Suspended",
    "RunFailed",
    "ResumeResult",
    "StepExecutor",
    "StepOutcome",
    "Succeeded",
    "Failed",
    "Coordinator",
    "WorkerResult",
    # Configuration
    "Settings",
    "get_settings",
    "configure_logging",
    # Metadata
    "__version__",
]
