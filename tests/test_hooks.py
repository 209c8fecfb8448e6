"""Tests for hooks: suspension, single resolution, timeout race and token routing."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import BaseModel

from pykairos.core import (
    AwaitHook,
    Call,
    Complete,
    CreateHook,
    HookCatalog,
    HookKind,
    HookNotFoundError,
    HookPayloadError,
    StageContext,
)
from pykairos.decorators import stage, step, workflow
from pykairos.executor import Suspended
from pykairos.models import HookState, RunStatus, utcnow


class Decision(BaseModel):
    approved: bool
    comment: str | None = None


REVIEW = HookKind("review", Decision, marker=":review", default_timeout="1h")


@workflow(name="review")
class ReviewWorkflow:
    """Create a review hook, notify, then race it against its timeout."""

    hook_kinds = (REVIEW,)

    def __init__(self, timeout=None, notify_failures: int = 0, token: str | None = None):
        self.timeout = timeout
        self.token = token
        self.notify_failures = notify_failures
        self.notified: list[str] = []

    @step(max_retries=3)
    async def notify(self, input):
        self.notified.append(input["token"])
        if len(self.notified) <= self.notify_failures:
            raise ConnectionError("mail server down")
        return {"sent": True}

    @stage
    def open(self, ctx: StageContext):
        token = self.token or f"{ctx.run_id}{REVIEW.marker}"
        return CreateHook(
            kind=REVIEW,
            token=token,
            timeout=self.timeout,
            save_as="token",
            then="wait",
            notify=Call(self.notify, {"token": token}),
        )

    @stage
    def wait(self, ctx: StageContext):
        return AwaitHook(
            token=ctx.state["token"],
            on_timeout={"approved": False, "comment": "timeout"},
            save_as="decision",
            then="finish",
        )

    @stage
    def finish(self, ctx: StageContext):
        return Complete(ctx.state["decision"])


async def start_suspended(runtime, workflow_instance) -> tuple[str, str]:
    runtime.register(workflow_instance)
    run_id = await runtime.start("review")
    run = await runtime.join(run_id)
    assert run.status is RunStatus.SUSPENDED
    return run_id, run.checkpoint.waiting_on


async def start_racing(runtime, workflow_instance) -> tuple[str, str]:
    """Start a run whose hook may time out before the caller looks at it."""
    runtime.register(workflow_instance)
    run_id = await runtime.start("review")
    return run_id, f"{run_id}{REVIEW.marker}"


# ==============================================================================
# Suspension and resume
# ==============================================================================


@pytest.mark.asyncio
async def test_hook_is_committed_before_notification(runtime, in_memory_registry):
    workflow_instance = ReviewWorkflow()
    run_id, token = await start_suspended(runtime, workflow_instance)

    hook = await in_memory_registry.get_hook(token)
    assert hook.state is HookState.PENDING
    assert hook.run_id == run_id
    assert workflow_instance.notified == [token]


@pytest.mark.asyncio
async def test_notification_retries_reuse_the_same_token(runtime):
    workflow_instance = ReviewWorkflow(notify_failures=2)
    _, token = await start_suspended(runtime, workflow_instance)

    assert workflow_instance.notified == [token, token, token]


@pytest.mark.asyncio
async def test_run_outcome_reports_suspension(runtime):
    _, token = await start_suspended(runtime, ReviewWorkflow())
    run_id = (await runtime.registry.find_run_by_token(token)).run_id

    outcome = await runtime.run(run_id)

    assert isinstance(outcome, Suspended)
    assert outcome.token == token
    assert outcome.expires_at is not None


@pytest.mark.asyncio
async def test_resume_continues_the_run(runtime):
    run_id, token = await start_suspended(runtime, ReviewWorkflow())

    result = await runtime.resume(token, {"approved": True, "comment": "lgtm"})

    assert result.run_id == run_id
    assert result.to_dict() == {"ok": True, "runId": run_id}
    run = await runtime.wait(run_id, "5s")
    assert run.status is RunStatus.COMPLETED
    assert run.result == {"approved": True, "comment": "lgtm"}


@pytest.mark.asyncio
async def test_resume_exactly_once(runtime):
    run_id, token = await start_suspended(runtime, ReviewWorkflow())

    await runtime.resume(token, {"approved": True})
    with pytest.raises(HookNotFoundError):
        await runtime.resume(token, {"approved": False})

    run = await runtime.wait(run_id, "5s")
    assert run.result == {"approved": True}


@pytest.mark.asyncio
async def test_concurrent_resumes_have_one_winner(runtime):
    run_id, token = await start_suspended(runtime, ReviewWorkflow())

    results = await asyncio.gather(
        *(runtime.resume(token, {"approved": i % 2 == 0}) for i in range(10)),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, HookNotFoundError)]
    assert len(winners) == 1
    assert len(losers) == 9
    run = await runtime.wait(run_id, "5s")
    assert run.status is RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_unknown_token_is_not_found(runtime):
    runtime.register(ReviewWorkflow())

    with pytest.raises(HookNotFoundError) as excinfo:
        await runtime.resume("no-such-run:review", {"approved": True})

    assert excinfo.value.token == "no-such-run:review"


@pytest.mark.asyncio
async def test_token_without_known_marker_is_not_found(runtime):
    with pytest.raises(HookNotFoundError):
        await runtime.resume("plain-token", {"approved": True})


@pytest.mark.asyncio
async def test_invalid_payload_is_rejected_and_hook_stays_pending(runtime):
    run_id, token = await start_suspended(runtime, ReviewWorkflow())

    with pytest.raises(HookPayloadError):
        await runtime.resume(token, {"approved": "maybe"})

    hook = await runtime.registry.get_hook(token)
    assert hook.state is HookState.PENDING
    await runtime.resume(token, {"approved": False})
    assert (await runtime.wait(run_id, "5s")).result == {"approved": False}


@pytest.mark.asyncio
async def test_resume_normalizes_token(runtime):
    run_id, token = await start_suspended(runtime, ReviewWorkflow())
    mangled = token.replace(":", "%3A") + '%22,'

    result = await runtime.resume(mangled, {"approved": True})

    assert result.run_id == run_id
    assert result.token == token


@pytest.mark.asyncio
async def test_percent_encoded_token_is_stored_decoded(runtime):
    """A token built with %XX sequences is still reachable by resume."""
    workflow_instance = ReviewWorkflow(token="order%41-7:review")
    run_id, token = await start_suspended(runtime, workflow_instance)

    assert token == "orderA-7:review"
    assert workflow_instance.notified == ["order%41-7:review"]
    result = await runtime.resume("order%41-7:review", {"approved": True})

    assert result.run_id == run_id
    run = await runtime.wait(run_id, "5s")
    assert run.result == {"approved": True}


@pytest.mark.asyncio
async def test_token_collision_fails_the_second_run(registry, runtime_factory):
    """A run whose hook token is taken fails instead of hanging at RUNNING."""
    runtime = runtime_factory(registry)
    runtime.register(ReviewWorkflow(token="shared:review"))
    first = await runtime.start("review")
    assert (await runtime.join(first)).status is RunStatus.SUSPENDED

    second = await runtime.start("review")
    run = await runtime.wait(second, "5s")

    assert run.status is RunStatus.FAILED
    assert "already belongs to run" in run.error
    assert run.checkpoint.stage == "open"
    hook = await runtime.registry.get_hook("shared:review")
    assert hook.run_id == first
    assert hook.is_pending


# ==============================================================================
# Timeout race
# ==============================================================================


@pytest.mark.asyncio
async def test_timeout_wins_when_nobody_resumes(runtime):
    run_id, token = await start_racing(runtime, ReviewWorkflow(timeout="50ms"))

    run = await runtime.wait(run_id, "5s")

    assert run.status is RunStatus.COMPLETED
    assert run.result == {"approved": False, "comment": "timeout"}
    assert (await runtime.registry.get_hook(token)).state is HookState.EXPIRED


@pytest.mark.asyncio
async def test_resume_after_timeout_is_not_found(runtime):
    run_id, token = await start_racing(runtime, ReviewWorkflow(timeout="50ms"))
    await runtime.wait(run_id, "5s")

    with pytest.raises(HookNotFoundError):
        await runtime.resume(token, {"approved": True})


@pytest.mark.asyncio
async def test_configured_timeout_applies_to_kind(in_memory_registry, runtime_factory):
    rt = runtime_factory(in_memory_registry, hook_timeouts={"review": "50ms"})
    run_id, _ = await start_racing(rt, ReviewWorkflow())

    run = await rt.wait(run_id, "5s")

    assert run.result == {"approved": False, "comment": "timeout"}


@pytest.mark.asyncio
async def test_hook_deadline_uses_kind_default(runtime):
    _, token = await start_suspended(runtime, ReviewWorkflow())

    hook = await runtime.registry.get_hook(token)

    remaining = hook.expires_at - utcnow()
    assert timedelta(minutes=59) < remaining <= timedelta(hours=1)


@pytest.mark.asyncio
async def test_expire_due_hooks_takes_timeout_branch(runtime):
    run_id, token = await start_suspended(runtime, ReviewWorkflow())

    expired = await runtime.expire_due_hooks(utcnow() + timedelta(hours=2))

    assert expired == [token]
    run = await runtime.wait(run_id, "5s")
    assert run.result == {"approved": False, "comment": "timeout"}


@pytest.mark.asyncio
async def test_terminal_run_closes_pending_hooks(runtime):
    """Hooks a run never awaited are expired once it finishes."""
    extra = HookKind("extra", Decision, marker=":extra")

    @workflow(name="abandon")
    class Abandon:
        hook_kinds = (extra,)

        @stage
        def open(self, ctx):
            return CreateHook(kind=extra, token=f"{ctx.run_id}:extra", save_as="t", then="done")

        @stage
        def done(self, ctx):
            return Complete("finished without waiting")

    runtime.register(Abandon())
    run_id = await runtime.start("abandon")
    await runtime.wait(run_id, "5s")

    with pytest.raises(HookNotFoundError):
        await runtime.resume(f"{run_id}:extra", {"approved": True})


# ==============================================================================
# Routing
# ==============================================================================


def test_catalog_routes_by_longest_marker():
    approval = HookKind("approval", Decision, marker=":approval")
    clause = HookKind("clause", Decision, marker=":clause-validation-approval")
    catalog = HookCatalog([approval, clause])

    assert catalog.route("contract:u1:abc:clause-validation-approval") is clause
    assert catalog.route("teacher-verification:m1:1700000000000:approval") is approval
    assert catalog.route("contract:u1:abc:legal") is None


def test_catalog_never_routes_to_sleep_hooks():
    from pykairos.core import SLEEP

    catalog = HookCatalog([SLEEP])
    assert catalog.route("run-1:nap@0:sleep") is None


def test_hook_kind_validation_drops_unset_fields():
    assert REVIEW.validate("t:review", {"approved": True}) == {"approved": True}
    with pytest.raises(HookPayloadError):
        REVIEW.validate("t:review", {"comment": "no decision"})
