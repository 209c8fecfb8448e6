"""In-memory storage implementation for pykairos.

Design Pattern: Adapter Pattern
InMemoryRunRegistry adapts in-memory dictionaries to the RunRegistry
interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from pykairos.models import Hook, HookState, RunStatus, WorkflowRun, utcnow
from pykairos.storage.base import RunRegistry, StorageError


def _copy_run(run: WorkflowRun) -> WorkflowRun:
    return WorkflowRun.from_dict(run.to_dict())


def _copy_hook(hook: Hook) -> Hook:
    return Hook.from_dict(hook.to_dict())


class InMemoryRunRegistry(RunRegistry):
    """In-memory storage for testing.

    Can be substituted for SqliteRunRegistry without changing client code.
    Stored records are copies, so callers never share mutable state with
    the registry.

    Usage:
        registry = InMemoryRunRegistry()
        runtime = Runtime(registry)
    """

    def __init__(self):
        # Storage: {run_id: WorkflowRun}
        self._runs: dict[str, WorkflowRun] = {}

        # Storage: {token: Hook}
        self._hooks: dict[str, Hook] = {}

        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return "InMemoryRunRegistry"

    async def create_run(self, run: WorkflowRun) -> None:
        async with self._lock:
            if run.run_id in self._runs:
                raise StorageError(f"Run already exists: {run.run_id}")
            self._runs[run.run_id] = _copy_run(run)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        async with self._lock:
            run = self._runs.get(run_id)
            return _copy_run(run) if run else None

    async def save_run(self, run: WorkflowRun) -> None:
        async with self._lock:
            if run.run_id not in self._runs:
                raise StorageError(f"Run not found: {run.run_id}")
            run.touch()
            self._runs[run.run_id] = _copy_run(run)

    async def list_runs(self, status: RunStatus | None = None) -> list[WorkflowRun]:
        async with self._lock:
            runs = [
                _copy_run(run)
                for run in self._runs.values()
                if status is None or run.status == status
            ]
        return sorted(runs, key=lambda r: r.created_at)

    async def create_hook(self, hook: Hook) -> Hook:
        async with self._lock:
            existing = self._hooks.get(hook.token)
            if existing is not None:
                if existing.run_id != hook.run_id:
                    raise StorageError(
                        f"Hook token {hook.token} already belongs to run {existing.run_id}"
                    )
                return _copy_hook(existing)
            self._hooks[hook.token] = _copy_hook(hook)
            return _copy_hook(hook)

    async def get_hook(self, token: str) -> Hook | None:
        async with self._lock:
            hook = self._hooks.get(token)
            return _copy_hook(hook) if hook else None

    async def resolve_hook(
        self, token: str, payload: dict[str, Any], now: datetime | None = None
    ) -> Hook | None:
        now = now or utcnow()
        async with self._lock:
            hook = self._hooks.get(token)
            if hook is None or not hook.is_pending or hook.is_due(now):
                return None
            hook.state = HookState.RESOLVED
            hook.payload = dict(payload)
            hook.settled_at = now
            return _copy_hook(hook)

    async def expire_hook(self, token: str, now: datetime | None = None) -> Hook | None:
        async with self._lock:
            hook = self._hooks.get(token)
            if hook is None or not hook.is_pending:
                return None
            hook.state = HookState.EXPIRED
            hook.settled_at = now or utcnow()
            return _copy_hook(hook)

    async def close_hooks(self, run_id: str) -> list[str]:
        now = utcnow()
        closed = []
        async with self._lock:
            for hook in self._hooks.values():
                if hook.run_id == run_id and hook.is_pending:
                    hook.state = HookState.EXPIRED
                    hook.settled_at = now
                    closed.append(hook.token)
        return closed

    async def pending_hooks(self, run_id: str | None = None) -> list[Hook]:
        async with self._lock:
            hooks = [
                _copy_hook(h)
                for h in self._hooks.values()
                if h.is_pending and (run_id is None or h.run_id == run_id)
            ]
        return sorted(hooks, key=lambda h: (h.expires_at is None, h.expires_at or h.created_at))

    async def reset(self) -> None:
        async with self._lock:
            self._runs.clear()
            self._hooks.clear()
