"""
Durable workflow runtime.

The Runtime interprets workflows written as explicit state machines. Each
stage handler returns one Command; the Runtime carries it out, commits the
result to the run's checkpoint and moves the program counter to the next
stage. Because a step record and the stage advance it causes are saved in a
single registry write, a process that dies at any point resumes from the
last committed stage without re-invoking committed steps.

Suspension:
A run waiting on a hook (or a Sleep) is saved as SUSPENDED and holds no
task. Hook deadlines are loop timers (``loop.call_later``). When a hook is
resolved or expires, the run is marked PENDING and driven again; the
AwaitHook stage then commits the payload or its timeout value.

Concurrency:
- Runs are independent; many can be driven concurrently.
- One writer per run: every drive of a run holds that run's asyncio.Lock.
- Inside a run, only FanOut executes steps concurrently.

Example:
    ```python
    registry = InMemoryRunRegistry()
    runtime = Runtime(registry)
    runtime.register(TeacherVerification(MockTeacherRegistry(), RecordingNotifier()))

    run_id = await runtime.start("teacher-verification", {"state": "CA", ...})
    await runtime.join(run_id)  # suspended on the approval hook

    await runtime.resume(f"teacher-verification:msr-1:...:approval", {"approved": True})
    run = await runtime.wait(run_id)
    print(run.result)
    ```
"""

from __future__ import annotations

import asyncio
import copy
import logging
import weakref
from collections.abc import Callable, Coroutine
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError
from uuid_extensions import uuid7

from pykairos.config import Settings, get_settings
from pykairos.core.commands import (
    AwaitHook,
    Call,
    Command,
    Complete,
    CreateHook,
    Fail,
    FanOut,
    Sleep,
)
from pykairos.core.context import StageContext
from pykairos.core.duration import Duration, parse_duration
from pykairos.core.errors import (
    HookNotFoundError,
    InvalidInputError,
    NonDeterminismError,
    RunNotFoundError,
    WorkflowDefinitionError,
)
from pykairos.core.hook_kind import SLEEP, HookCatalog, HookKind
from pykairos.core.tokens import normalize_token
from pykairos.decorators import get_workflow_name
from pykairos.executor.fanout import Coordinator, WorkerResult
from pykairos.executor.outcome import (
    Completed,
    ResumeResult,
    RunFailed,
    RunOutcome,
    Suspended,
)
from pykairos.executor.step import StepExecutor, StepOutcome, Succeeded, hash_input
from pykairos.models import (
    Checkpoint,
    Hook,
    HookState,
    RunStatus,
    StepRecord,
    WorkflowRun,
    utcnow,
)
from pykairos.storage.base import RunRegistry

logger = logging.getLogger(__name__)


class Runtime:
    """
    Drives workflow runs against a RunRegistry.

    Args:
        registry: Durable store of runs and hooks.
        executor: Step executor (default: one using ``settings.retry_policy()``).
        catalog: Hook kinds resume calls are routed through. Kinds listed on
            registered workflows (``hook_kinds``) are added automatically.
        settings: Runtime settings (default: ``get_settings()``).
    """

    def __init__(
        self,
        registry: RunRegistry,
        *,
        executor: StepExecutor | None = None,
        catalog: HookCatalog | None = None,
        settings: Settings | None = None,
    ):
        self.registry = registry
        self.settings = settings or get_settings()
        self.executor = executor or StepExecutor(self.settings.retry_policy())
        self.coordinator = Coordinator(self.executor)
        self.catalog = catalog if catalog is not None else HookCatalog()
        self.catalog.register(SLEEP)

        self._workflows: dict[str, Any] = {}
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._drives: dict[str, asyncio.Task] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._waiters: dict[str, set[asyncio.Event]] = {}
        self._closed = False

    def __repr__(self) -> str:
        return f"Runtime(registry={self.registry!r}, workflows={sorted(self._workflows)})"

    # ========================================================================
    # Registration
    # ========================================================================

    def register(self, workflow: Any) -> None:
        """
        Register a workflow instance (or a @workflow class with a no-arg constructor).

        Raises:
            WorkflowDefinitionError: If the object is not a workflow or its
                name is taken by a different workflow.
        """
        if isinstance(workflow, type):
            workflow = workflow()
        name = get_workflow_name(workflow)
        existing = self._workflows.get(name)
        if existing is not None and existing is not workflow:
            raise WorkflowDefinitionError(f"Workflow {name!r} already registered")

        for kind in getattr(workflow, "hook_kinds", ()):
            self.catalog.register(kind)

        self._workflows[name] = workflow
        logger.debug(f"Registered workflow: {name} (stages={workflow.stages()})")

    def workflows(self) -> list[str]:
        return sorted(self._workflows)

    def _get_workflow(self, name: str) -> Any:
        workflow = self._workflows.get(name)
        if workflow is None:
            raise WorkflowDefinitionError(f"Workflow not registered: {name}")
        return workflow

    # ========================================================================
    # Public API
    # ========================================================================

    async def start(self, name: str, input: Any = None) -> str:
        """
        Start a run and return its id without waiting for it.

        The run is persisted as RUNNING before the first stage executes and
        is driven on a background task.

        If the workflow declares an ``input_model`` (a pydantic model), the
        input is validated and stored in its JSON form (aliases, no None
        fields).

        Raises:
            WorkflowDefinitionError: If no workflow is registered under ``name``.
            InvalidInputError: If the input model rejects the input.
        """
        workflow = self._get_workflow(name)
        input_model = getattr(workflow, "input_model", None)
        if input_model is not None:
            try:
                input = input_model.model_validate(input).model_dump(
                    mode="json", by_alias=True, exclude_none=True
                )
            except ValidationError as e:
                raise InvalidInputError(name, str(e)) from e

        run_id = str(uuid7())
        run = WorkflowRun(
            run_id=run_id,
            workflow_name=name,
            input=copy.deepcopy(input),
            checkpoint=Checkpoint(stage=workflow._kairos_initial_stage),
            status=RunStatus.RUNNING,
        )
        await self.registry.create_run(run)
        logger.info(f"Started run {run_id} of workflow {name}")

        self._spawn_drive(run_id)
        return run_id

    async def run(self, run_id: str) -> RunOutcome:
        """
        Drive a run in the caller's task until it completes, fails or suspends.

        Safe to call for any run: terminal runs return their recorded
        outcome, suspended runs whose hook is still pending suspend again.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        async with self._lock_for(run_id):
            return await self._drive_locked(run_id)

    async def join(self, run_id: str) -> WorkflowRun:
        """
        Wait for the background drives of a run, then return its snapshot.

        Returns as soon as no drive is in flight: the run may be suspended.
        Use wait() to block until the run is terminal.
        """
        while True:
            task = self._drives.get(run_id)
            if task is None or task.done():
                break
            await asyncio.shield(task)
        return await self._load(run_id)

    async def wait(self, run_id: str, timeout: Duration | None = None) -> WorkflowRun:
        """
        Wait until a run is COMPLETED or FAILED and return its snapshot.

        Raises:
            TimeoutError: If the run is not terminal within ``timeout``.
        """
        seconds = parse_duration(timeout).total_seconds() if timeout is not None else None
        event = asyncio.Event()
        waiters = self._waiters.setdefault(run_id, set())
        waiters.add(event)
        try:
            run = await self._load(run_id)
            if not run.is_terminal:
                await asyncio.wait_for(event.wait(), seconds)
                run = await self._load(run_id)
            return run
        finally:
            waiters.discard(event)
            if not waiters and self._waiters.get(run_id) is waiters:
                del self._waiters[run_id]

    async def get_run(self, run_id: str) -> WorkflowRun:
        return await self._load(run_id)

    async def resume(self, token: str, payload: Any) -> ResumeResult:
        """
        Deliver an external response to a pending hook.

        The token is normalized, routed to its hook kind, and the payload is
        validated against that kind's schema. Exactly one resume per hook
        succeeds; every other call (concurrent, late, after the deadline, or
        after the run ended) gets HookNotFoundError.

        Raises:
            HookNotFoundError: Unknown, expired or already-resolved hook.
            HookPayloadError: Payload does not match the hook's schema.
        """
        token = normalize_token(token)
        kind = self.catalog.route(token)
        hook = await self.registry.get_hook(token)
        if kind is None or hook is None or hook.kind != kind.name or not hook.is_pending:
            logger.info(f"Resume rejected, hook not found: {token}")
            raise HookNotFoundError(token)

        data = kind.validate(token, payload)

        resolved = await self.registry.resolve_hook(token, data)
        if resolved is None:
            logger.info(f"Resume rejected, hook already settled: {token}")
            raise HookNotFoundError(token)

        self._cancel_timer(token)
        logger.info(f"Resolved hook {token} ({kind.name}) of run {hook.run_id}")
        self._spawn_drive(hook.run_id, wake=True)
        return ResumeResult(run_id=hook.run_id, token=token, kind=kind.name)

    async def expire_due_hooks(self, now: datetime | None = None) -> list[str]:
        """
        Expire every pending hook whose deadline has passed.

        Each expired hook's run continues down its timeout branch. Hosts
        that cannot rely on in-process timers (for example after a long
        pause) call this periodically.

        Returns:
            Tokens of the hooks this call expired.
        """
        now = now or utcnow()
        expired = []
        for hook in await self.registry.pending_hooks():
            if not hook.is_due(now):
                continue
            if await self.registry.expire_hook(hook.token, now) is None:
                continue
            self._cancel_timer(hook.token)
            logger.warning(f"Hook {hook.token} of run {hook.run_id} expired")
            expired.append(hook.token)
            self._spawn_drive(hook.run_id, wake=True)
        return expired

    async def recover(self) -> list[str]:
        """
        Pick up unfinished runs after a process restart.

        - RUNNING / PENDING runs are driven again from their checkpoint.
        - SUSPENDED runs re-arm their hook timer; if the hook was settled or
          its deadline passed while the process was down, the run continues.

        Returns:
            Ids of the runs that were re-driven or re-armed.
        """
        recovered = []
        for run in await self.registry.list_runs():
            if run.is_terminal:
                continue
            if run.workflow_name not in self._workflows:
                logger.warning(
                    f"Skipping run {run.run_id}: workflow {run.workflow_name} not registered"
                )
                continue

            if run.status is RunStatus.SUSPENDED and run.checkpoint.waiting_on:
                hook = await self.registry.get_hook(run.checkpoint.waiting_on)
                if hook is not None and hook.is_pending and not hook.is_due():
                    self._arm_timer(hook)
                    recovered.append(run.run_id)
                    continue
                if hook is not None and hook.is_pending:
                    await self.registry.expire_hook(hook.token)
                    logger.warning(f"Hook {hook.token} expired while the process was down")

            logger.info(f"Recovering run {run.run_id} ({run.status}, stage={run.checkpoint.stage})")
            self._spawn_drive(run.run_id, wake=run.status is RunStatus.SUSPENDED)
            recovered.append(run.run_id)
        return recovered

    async def shutdown(self) -> None:
        """Cancel hook timers and in-flight drives. Runs stay resumable via recover()."""
        self._closed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(f"Runtime shut down ({len(tasks)} tasks cancelled)")

    # ========================================================================
    # Background tasks and timers
    # ========================================================================

    def _lock_for(self, run_id: str) -> asyncio.Lock:
        lock = self._locks.get(run_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[run_id] = lock
        return lock

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background drive failed: {error!r}", exc_info=error)

    def _spawn_drive(self, run_id: str, wake: bool = False) -> None:
        if self._closed:
            logger.warning(f"Runtime is shut down, not driving run {run_id}")
            return
        task = self._spawn(self._drive(run_id, wake))
        self._drives[run_id] = task
        task.add_done_callback(lambda t: self._forget_drive(run_id, t))

    def _forget_drive(self, run_id: str, task: asyncio.Task) -> None:
        if self._drives.get(run_id) is task:
            del self._drives[run_id]

    async def _drive(self, run_id: str, wake: bool) -> RunOutcome:
        async with self._lock_for(run_id):
            if wake:
                run = await self._load(run_id)
                if run.status is RunStatus.SUSPENDED:
                    run.status = RunStatus.PENDING
                    await self.registry.save_run(run)
            return await self._drive_locked(run_id)

    def _arm_timer(self, hook: Hook) -> None:
        if hook.expires_at is None or self._closed:
            return
        self._cancel_timer(hook.token)
        delay = max(0.0, (hook.expires_at - utcnow()).total_seconds())
        loop = asyncio.get_running_loop()
        self._timers[hook.token] = loop.call_later(delay, self._on_timer, hook.token)
        logger.debug(f"Armed timer for hook {hook.token} ({delay:.3f}s)")

    def _cancel_timer(self, token: str) -> None:
        handle = self._timers.pop(token, None)
        if handle is not None:
            handle.cancel()

    def _on_timer(self, token: str) -> None:
        self._timers.pop(token, None)
        self._spawn(self._expire(token))

    async def _expire(self, token: str) -> None:
        hook = await self.registry.expire_hook(token)
        if hook is None:
            # Lost the race against a resume
            return
        if hook.kind == SLEEP.name:
            logger.debug(f"Sleep {token} of run {hook.run_id} elapsed")
        else:
            logger.warning(f"Hook {token} of run {hook.run_id} timed out")
        self._spawn_drive(hook.run_id, wake=True)

    # ========================================================================
    # Interpreter
    # ========================================================================

    async def _load(self, run_id: str) -> WorkflowRun:
        run = await self.registry.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def _drive_locked(self, run_id: str) -> RunOutcome:
        run = await self._load(run_id)
        if run.is_terminal:
            return self._recorded_outcome(run)

        workflow = self._get_workflow(run.workflow_name)
        if run.status is not RunStatus.RUNNING:
            logger.info(f"Resuming run {run_id} at stage {run.checkpoint.stage}")
            run.status = RunStatus.RUNNING
            await self.registry.save_run(run)

        while True:
            stage = run.checkpoint.stage
            try:
                handler = self._stage_handler(workflow, stage)
            except WorkflowDefinitionError as e:
                return await self._fail(run, str(e))

            context = StageContext.build(
                run.run_id, run.workflow_name, stage, run.input, run.checkpoint.state
            )
            try:
                command = handler(context)
            except Exception as e:
                logger.exception(f"Stage {stage} of run {run.run_id} raised")
                return await self._fail(run, f"Stage {stage} raised {type(e).__name__}: {e}")

            try:
                outcome = await self._interpret(workflow, run, stage, command)
            except (WorkflowDefinitionError, NonDeterminismError) as e:
                return await self._fail(run, str(e))
            except Exception as e:
                # A run is never left RUNNING without a drive in flight
                logger.exception(f"Stage {stage} of run {run.run_id} could not be carried out")
                return await self._fail(run, f"Stage {stage} failed: {type(e).__name__}: {e}")

            if outcome is not None:
                return outcome

    def _stage_handler(self, workflow: Any, stage: str | None) -> Callable[[StageContext], Any]:
        if stage is None or stage not in workflow._kairos_stages:
            raise WorkflowDefinitionError(
                f"Workflow {get_workflow_name(workflow)} has no stage {stage!r}"
            )
        return getattr(workflow, stage)

    def _check_next(self, workflow: Any, stage: str, then: str | None) -> str:
        if then is None or then not in workflow._kairos_stages:
            raise WorkflowDefinitionError(
                f"Stage {stage} of workflow {get_workflow_name(workflow)} "
                f"names unknown next stage {then!r}"
            )
        return then

    async def _interpret(
        self, workflow: Any, run: WorkflowRun, stage: str, command: Command
    ) -> RunOutcome | None:
        """Carry out one command. Returns an outcome when the drive must stop."""
        key = f"{stage}@{run.checkpoint.sequence}"

        match command:
            case Call():
                then = self._check_next(workflow, stage, command.then)
                record = self._replayed(run, key, command)
                if record is None:
                    outcome = await self.executor.execute(
                        command.step, command.input, command.max_retries
                    )
                    record = self._record(key, command, outcome)
                    run.checkpoint.steps.append(record)
                if not record.succeeded:
                    return await self._fail(
                        run, f"Step {record.step_name} failed: {record.error}"
                    )
                # Step record and stage advance are committed together
                run.checkpoint.advance(then, command.save_as, record.output)
                await self.registry.save_run(run)
                return None

            case FanOut():
                then = self._check_next(workflow, stage, command.then)
                return await self._fan_out(run, key, command, then)

            case CreateHook():
                then = self._check_next(workflow, stage, command.then)
                return await self._create_hook(run, stage, key, command, then)

            case AwaitHook():
                then = self._check_next(workflow, stage, command.then)
                return await self._await_hook(
                    run, command.token, then, command.save_as, command.on_timeout
                )

            case Sleep():
                then = self._check_next(workflow, stage, command.then)
                token = f"{run.run_id}:{key}{SLEEP.marker}"
                await self.registry.create_hook(
                    Hook(
                        token=token,
                        run_id=run.run_id,
                        kind=SLEEP.name,
                        stage=stage,
                        expires_at=utcnow() + self._duration(command.duration),
                    )
                )
                return await self._await_hook(run, token, then, None, None)

            case Complete():
                run.status = RunStatus.COMPLETED
                run.result = copy.deepcopy(command.value)
                await self.registry.save_run(run)
                await self._finish(run)
                logger.info(f"Run {run.run_id} completed")
                return Completed(run.run_id, run.result)

            case Fail():
                return await self._fail(run, command.message)

            case _:
                raise WorkflowDefinitionError(
                    f"Stage {stage} returned {command!r}, which is not a command"
                )

    async def _fan_out(
        self, run: WorkflowRun, key: str, command: FanOut, then: str
    ) -> RunOutcome | None:
        completed: dict[int, WorkerResult] = {}
        for index, call in enumerate(command.calls):
            record = self._replayed(run, f"{key}[{index}]", call)
            if record is not None:
                completed[index] = WorkerResult(
                    record.step_name, output=record.output, error=record.error
                )
        if completed:
            logger.debug(f"Run {run.run_id}: replaying {len(completed)} committed workers")

        async def on_result(index: int, call: Call, outcome: StepOutcome) -> None:
            run.checkpoint.steps.append(self._record(f"{key}[{index}]", call, outcome))
            await self.registry.save_run(run)

        results = await self.coordinator.fan_out(
            command.calls, on_result=on_result, completed=completed
        )

        for call, result in zip(command.calls, results, strict=True):
            if not result.ok and call.required:
                return await self._fail(
                    run, f"Required worker {result.worker_name} failed: {result.error}"
                )

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning(f"Run {run.run_id}: {failed}/{len(results)} workers failed")

        run.checkpoint.advance(then, command.save_as, [r.to_dict() for r in results])
        await self.registry.save_run(run)
        return None

    async def _create_hook(
        self, run: WorkflowRun, stage: str, key: str, command: CreateHook, then: str
    ) -> RunOutcome | None:
        kind = command.kind
        # Stored in the form every resume looks up
        token = normalize_token(command.token)
        if not kind.owns(token):
            raise WorkflowDefinitionError(
                f"Hook token {command.token!r} does not carry the {kind.name} "
                f"marker {kind.marker!r}"
            )
        self.catalog.register(kind)

        # The hook is committed before anyone is notified of its token
        hook = await self.registry.create_hook(
            Hook(
                token=token,
                run_id=run.run_id,
                kind=kind.name,
                stage=stage,
                expires_at=utcnow() + self._hook_timeout(kind, command.timeout),
            )
        )
        logger.info(f"Run {run.run_id} created hook {hook.token} ({kind.name})")

        if command.notify is not None:
            notify_key = f"{key}:notify"
            record = self._replayed(run, notify_key, command.notify)
            if record is None:
                outcome = await self.executor.execute(
                    command.notify.step, command.notify.input, command.notify.max_retries
                )
                record = self._record(notify_key, command.notify, outcome)
                run.checkpoint.steps.append(record)
            if not record.succeeded:
                return await self._fail(
                    run, f"Notification {record.step_name} failed: {record.error}"
                )

        run.checkpoint.advance(then, command.save_as, hook.token)
        await self.registry.save_run(run)
        return None

    async def _await_hook(
        self,
        run: WorkflowRun,
        token: str,
        then: str,
        save_as: str | None,
        on_timeout: Any,
    ) -> RunOutcome | None:
        hook = await self.registry.get_hook(token)
        if hook is None or hook.run_id != run.run_id:
            raise WorkflowDefinitionError(f"Run {run.run_id} awaits unknown hook {token!r}")

        if hook.is_pending and hook.is_due():
            await self.registry.expire_hook(token)
            hook = await self.registry.get_hook(token)

        if hook.state is HookState.RESOLVED:
            logger.info(f"Run {run.run_id} continues with resolution of {token}")
            run.checkpoint.advance(then, save_as, hook.payload)
            await self.registry.save_run(run)
            return None

        if hook.state is HookState.EXPIRED:
            if hook.kind != SLEEP.name:
                logger.warning(f"Run {run.run_id} takes the timeout branch of {token}")
            run.checkpoint.advance(then, save_as, copy.deepcopy(on_timeout))
            await self.registry.save_run(run)
            return None

        run.status = RunStatus.SUSPENDED
        run.checkpoint.waiting_on = token
        await self.registry.save_run(run)
        self._arm_timer(hook)
        logger.info(f"Run {run.run_id} suspended on {token}")
        return Suspended(run.run_id, token, hook.expires_at)

    async def _fail(self, run: WorkflowRun, message: str) -> RunFailed:
        run.status = RunStatus.FAILED
        run.error = message
        await self.registry.save_run(run)
        await self._finish(run)
        logger.error(f"Run {run.run_id} failed: {message}")
        return RunFailed(run.run_id, message)

    async def _finish(self, run: WorkflowRun) -> None:
        """Close the pending hooks of a terminal run and wake its waiters."""
        for token in await self.registry.close_hooks(run.run_id):
            self._cancel_timer(token)
            logger.debug(f"Closed hook {token} of finished run {run.run_id}")
        for event in self._waiters.pop(run.run_id, ()):
            event.set()

    # ========================================================================
    # Helpers
    # ========================================================================

    def _hook_timeout(self, kind: HookKind, explicit: Duration | None) -> timedelta:
        for candidate in (
            explicit,
            self.settings.hook_timeouts.get(kind.name),
            kind.default_timeout,
            self.settings.default_hook_timeout,
        ):
            if candidate is not None:
                return self._duration(candidate)
        raise WorkflowDefinitionError(f"No timeout for hook kind {kind.name}")

    def _duration(self, value: Duration) -> timedelta:
        try:
            return parse_duration(value)
        except ValueError as e:
            raise WorkflowDefinitionError(str(e)) from e

    def _replayed(self, run: WorkflowRun, key: str, call: Call) -> StepRecord | None:
        record = run.checkpoint.find_step(key)
        if record is None:
            return None
        if record.step_name != call.step_name or record.input_hash != hash_input(call.input):
            raise NonDeterminismError(
                f"Run {run.run_id}: call {key} is {call.step_name} with different input "
                f"than the committed {record.step_name}"
            )
        logger.debug(f"Run {run.run_id}: replaying committed step {key}")
        return record

    def _record(self, key: str, call: Call, outcome: StepOutcome) -> StepRecord:
        if isinstance(outcome, Succeeded):
            return StepRecord(
                key=key,
                step_name=call.step_name,
                input_hash=hash_input(call.input),
                attempts=outcome.attempts,
                output=outcome.value,
            )
        return StepRecord(
            key=key,
            step_name=call.step_name,
            input_hash=hash_input(call.input),
            attempts=outcome.attempts,
            error=outcome.error,
            error_kind=outcome.kind,
        )

    def _recorded_outcome(self, run: WorkflowRun) -> RunOutcome:
        if run.status is RunStatus.COMPLETED:
            return Completed(run.run_id, run.result)
        return RunFailed(run.run_id, run.error or "failed")
