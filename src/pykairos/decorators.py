"""
Decorators for declaring workflows.

- @step marks an async function as a durable step and records its retry
  configuration. Execution, retries and checkpointing happen in the
  StepExecutor and Runtime; the decorator only attaches metadata.
- @stage marks a method as a state-machine stage.
- @workflow collects a class's stages in definition order and gives the
  workflow a stable name.

Example:
    ```python
    @workflow(name="greeting")
    class Greeting:
        @step(max_retries=3)
        async def fetch_name(self, input: dict) -> str:
            return await directory.lookup(input["userId"])

        @stage
        def lookup(self, ctx: StageContext) -> Command:
            return Call(self.fetch_name, {"userId": ctx.input["userId"]},
                        save_as="name", then="finish")

        @stage
        def finish(self, ctx: StageContext) -> Command:
            return Complete(f"hello {ctx.state['name']}")
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from pykairos.core.duration import Duration, to_seconds
from pykairos.core.errors import WorkflowDefinitionError
from pykairos.models import RetryPolicy

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])


def step(
    func: F | None = None,
    *,
    name: str | None = None,
    max_retries: int | None = None,
    retry_policy: RetryPolicy | None = None,
    timeout: Duration | None = None,
) -> F:
    """
    Mark an async function (or method) as a durable step.

    Args:
        func: The function to decorate
        name: Step name recorded in the checkpoint (defaults to __name__)
        max_retries: Total attempt limit (1 means no retries)
        retry_policy: Backoff policy; max_retries overrides its attempt limit
        timeout: Per-attempt execution timeout

    Example:
        ```python
        @step
        async def fetch_data(input: dict) -> dict:
            return await api.get("/data")

        @step(max_retries=5, timeout="10s")
        async def flaky_lookup(input: dict) -> dict:
            ...
        ```
    """

    def decorator(f: F) -> F:
        policy = retry_policy
        if max_retries is not None:
            policy = (policy or RetryPolicy.STANDARD).attempts(max_retries)

        f._is_kairos_step = True  # type: ignore
        f._step_name = name or f.__name__  # type: ignore
        f._step_retry_policy = policy  # type: ignore
        f._step_timeout = to_seconds(timeout)  # type: ignore
        return f

    if func is not None:
        return decorator(func)
    return decorator  # type: ignore


def stage(func: F) -> F:
    """
    Mark a method as a workflow stage.

    Stage handlers are synchronous and deterministic: they read the
    StageContext and return one Command. They never perform I/O.
    """
    if not callable(func):
        raise TypeError("@stage must decorate a method")
    func._is_kairos_stage = True  # type: ignore
    return func


def workflow(cls: type[T] | None = None, *, name: str | None = None) -> type[T]:
    """
    Mark a class as a workflow definition.

    Collects @stage methods in definition order; the first one is the
    initial stage. Adds ``workflow_name()`` and ``stages()`` class helpers.

    Args:
        cls: The class to decorate
        name: Stable workflow name (defaults to the class name)

    Raises:
        WorkflowDefinitionError: If the class declares no stages.
    """

    def decorator(c: type[T]) -> type[T]:
        stages: list[str] = []
        for klass in reversed(c.__mro__):
            for attr_name, attr in klass.__dict__.items():
                if getattr(attr, "_is_kairos_stage", False) and attr_name not in stages:
                    stages.append(attr_name)

        if not stages:
            raise WorkflowDefinitionError(f"Workflow {c.__name__} declares no @stage methods")

        workflow_id = name if name is not None else c.__name__

        @classmethod
        def _workflow_name(klass) -> str:
            return workflow_id

        @classmethod
        def _stages(klass) -> list[str]:
            return list(stages)

        c._is_kairos_workflow = True  # type: ignore
        c._kairos_stages = stages  # type: ignore
        c._kairos_initial_stage = stages[0]  # type: ignore
        c.workflow_name = _workflow_name  # type: ignore
        c.stages = _stages  # type: ignore
        return c

    if cls is not None:
        return decorator(cls)
    return decorator  # type: ignore


def get_workflow_name(obj: Any) -> str:
    """Return the workflow name of a @workflow class or instance."""
    if not getattr(obj, "_is_kairos_workflow", False):
        raise WorkflowDefinitionError(
            f"{obj!r} is not a workflow (decorate its class with @workflow)"
        )
    return obj.workflow_name()
