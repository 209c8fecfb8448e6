"""
RunRegistry - Abstract interface for run and hook persistence.

Design Pattern: Adapter Pattern
RunRegistry defines the target interface that every storage backend
implements. The Runtime depends on this abstraction only, so tests use
InMemoryRunRegistry and hosts use SqliteRunRegistry without code changes.

The registry is the only shared mutable resource of the system. Two
operations carry the concurrency guarantees everything else relies on:

- save_run() writes a run's checkpoint, status and result atomically.
- resolve_hook() / expire_hook() are compare-and-set transitions out of
  PENDING: exactly one caller wins, every other caller gets None.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pykairos.core.errors import KairosError
from pykairos.models import Hook, RunStatus, WorkflowRun


class StorageError(KairosError):
    """
    Storage operation failed.

    Raised for missing records on update, duplicate keys and connection
    misuse. Never raised for a lost hook race, which is a normal outcome.
    """

    pass


class RunRegistry(ABC):
    """
    Abstract storage interface for workflow runs and hooks.

    Backends return snapshots: mutating a returned WorkflowRun or Hook has no
    effect until it is passed back through save_run().
    """

    # ========================================================================
    # Run Operations
    # ========================================================================

    @abstractmethod
    async def create_run(self, run: WorkflowRun) -> None:
        """
        Persist a new run.

        Raises:
            StorageError: If a run with the same id already exists.
        """
        pass

    @abstractmethod
    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Load a run snapshot, or None if unknown."""
        pass

    @abstractmethod
    async def save_run(self, run: WorkflowRun) -> None:
        """
        Atomically persist a run's checkpoint, status, result and error.

        A step record and the stage advance it causes are always written by
        the same call, so a crash never leaves one without the other.

        Raises:
            StorageError: If the run does not exist.
        """
        pass

    @abstractmethod
    async def list_runs(self, status: RunStatus | None = None) -> list[WorkflowRun]:
        """List runs, optionally filtered by status, oldest first."""
        pass

    # ========================================================================
    # Hook Operations
    # ========================================================================

    @abstractmethod
    async def create_hook(self, hook: Hook) -> Hook:
        """
        Persist a hook, idempotently.

        If a hook with the same token already exists for the same run, the
        stored hook is returned unchanged (its deadline included). This keeps
        the token and deadline stable when a stage is replayed.

        Raises:
            StorageError: If the token is already used by another run.
        """
        pass

    @abstractmethod
    async def get_hook(self, token: str) -> Hook | None:
        pass

    @abstractmethod
    async def resolve_hook(
        self, token: str, payload: dict[str, Any], now: datetime | None = None
    ) -> Hook | None:
        """
        Transition a hook PENDING → RESOLVED (compare-and-set).

        Fails when the hook is unknown, already settled, or past its deadline.

        Returns:
            The resolved hook, or None if this call did not win the transition.
        """
        pass

    @abstractmethod
    async def expire_hook(self, token: str, now: datetime | None = None) -> Hook | None:
        """
        Transition a hook PENDING → EXPIRED (compare-and-set).

        Returns:
            The expired hook, or None if it was already settled or unknown.
        """
        pass

    @abstractmethod
    async def close_hooks(self, run_id: str) -> list[str]:
        """
        Expire every still-pending hook of a run.

        Called when the run reaches a terminal status so late resumes get
        not-found.

        Returns:
            Tokens of the hooks that were closed.
        """
        pass

    @abstractmethod
    async def pending_hooks(self, run_id: str | None = None) -> list[Hook]:
        """List pending hooks (of one run, or of all runs), earliest deadline first."""
        pass

    async def find_run_by_token(self, token: str) -> WorkflowRun | None:
        """Look up the run that owns a hook token."""
        hook = await self.get_hook(token)
        if hook is None:
            return None
        return await self.get_run(hook.run_id)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @abstractmethod
    async def reset(self) -> None:
        """Clear all data (for testing/demos)."""
        pass

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""
        pass
