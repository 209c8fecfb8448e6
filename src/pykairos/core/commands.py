"""
Commands: the tagged variants a stage returns to the runtime.

A workflow is an explicit state machine. Each stage handler inspects the
committed state and returns exactly one command; the Runtime interprets it,
commits the outcome to the checkpoint, and moves to the stage named by
``then``.

Example:
    ```python
    @stage
    def query_registry(self, ctx: StageContext) -> Command:
        return Call(
            self.lookup_member,
            {"state": ctx.input["state"], "memberId": ctx.state["identifier"]["memberId"]},
            save_as="registry",
            then="validate_member",
        )
    ```

Design: Tagged Union
Frozen dataclasses, dispatched with ``match`` in the runtime's interpreter
loop. Nothing here performs I/O.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pykairos.core.duration import Duration
from pykairos.core.hook_kind import HookKind

StepFn = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class Call:
    """
    Invoke one step through the Step Executor.

    Attributes:
        step: Async step function (usually decorated with @step).
        input: JSON-serializable input passed as the single argument.
        save_as: State key the step's output is committed under.
        then: Stage to interpret next.
        max_retries: Total attempt limit, overriding the step's own setting.
        required: Inside a FanOut, whether a failure of this call aborts the
            run at the join. Ignored for sequential calls.
    """

    step: StepFn
    input: Any = None
    save_as: str | None = None
    then: str | None = None
    max_retries: int | None = None
    required: bool = True

    @property
    def step_name(self) -> str:
        return getattr(self.step, "_step_name", None) or getattr(
            self.step, "__name__", type(self.step).__name__
        )


@dataclass(frozen=True, init=False)
class FanOut:
    """
    Dispatch several calls concurrently and join on all of them.

    The committed value is the list of worker results in dispatch order.
    """

    calls: tuple[Call, ...]
    save_as: str
    then: str

    def __init__(self, calls: list[Call] | tuple[Call, ...], save_as: str, then: str):
        object.__setattr__(self, "calls", tuple(calls))
        object.__setattr__(self, "save_as", save_as)
        object.__setattr__(self, "then", then)


@dataclass(frozen=True)
class CreateHook:
    """
    Create an addressable suspension point.

    The hook (and its deadline) is committed before the optional ``notify``
    call runs, so the token exists before any external party sees it and
    stays the same across notification retries.
    """

    kind: HookKind
    token: str
    save_as: str
    then: str
    timeout: Duration | None = None
    notify: Call | None = None


@dataclass(frozen=True)
class AwaitHook:
    """
    Race a hook's resolution against its deadline.

    Commits the resolved payload, or ``on_timeout`` when the deadline wins.
    Suspends the run while the hook is pending.
    """

    token: str
    save_as: str
    then: str
    on_timeout: Any = field(default=None)


@dataclass(frozen=True)
class Sleep:
    """Suspend the run for a duration without holding a task."""

    duration: Duration
    then: str


@dataclass(frozen=True)
class Complete:
    """Finish the run successfully with ``value`` as its result."""

    value: Any = None


@dataclass(frozen=True)
class Fail:
    """Finish the run as failed."""

    message: str


Command = Call | FanOut | CreateHook | AwaitHook | Sleep | Complete | Fail
