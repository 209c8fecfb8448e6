"""
Durability tests for pykairos - crash recovery against a SQLite file.

Each test closes the registry (simulating process termination), reopens
the same database with a fresh Runtime, and checks that committed work is
not repeated and suspended runs can still be resumed.
"""

import asyncio

import pytest

from pykairos.core import Call, Complete, StageContext
from pykairos.decorators import stage, step, workflow
from pykairos.models import HookState, RunStatus
from pykairos.storage import SqliteRunRegistry
from pykairos.workflows import RecordingNotifier, TeacherVerification


class Crash(BaseException):
    """Stands in for the process dying mid-step."""


@workflow(name="ledger")
class LedgerWorkflow:
    def __init__(self, crash_on_post: bool):
        self.crash_on_post = crash_on_post
        self.reserved = 0
        self.posted = 0

    @step
    async def reserve(self, input):
        self.reserved += 1
        return {"reservation": f"r-{input['amount']}"}

    @step
    async def post(self, input):
        self.posted += 1
        if self.crash_on_post:
            raise Crash()
        return {"posted": input["reservation"]}

    @stage
    def begin(self, ctx: StageContext):
        return Call(self.reserve, {"amount": ctx.input["amount"]}, save_as="r", then="commit")

    @stage
    def commit(self, ctx: StageContext):
        return Call(self.post, ctx.state["r"], save_as="p", then="finish")

    @stage
    def finish(self, ctx: StageContext):
        return Complete(ctx.state["p"])


@pytest.mark.durability
@pytest.mark.asyncio
async def test_committed_step_survives_restart(temp_db_path, runtime_factory):
    """
    Durability Test: a step committed before the crash is replayed, not re-run.
    """
    # Phase 1: run until the second step crashes the "process"
    registry1 = SqliteRunRegistry(str(temp_db_path))
    await registry1.connect()
    rt1 = runtime_factory(registry1)
    before = LedgerWorkflow(crash_on_post=True)
    rt1.register(before)

    run_id = await rt1.start("ledger", {"amount": 5})
    with pytest.raises(Crash):
        await rt1.join(run_id)
    await rt1.shutdown()
    await registry1.close()

    # Phase 2: reopen the database (simulates process restart)
    registry2 = SqliteRunRegistry(str(temp_db_path))
    await registry2.connect()
    rt2 = runtime_factory(registry2)
    after = LedgerWorkflow(crash_on_post=False)
    rt2.register(after)

    await rt2.recover()
    run = await rt2.wait(run_id, "5s")

    assert run.status is RunStatus.COMPLETED
    assert run.result == {"posted": "r-5"}
    assert before.reserved == 1
    assert after.reserved == 0
    assert after.posted == 1

    await rt2.shutdown()
    await registry2.close()


@pytest.mark.durability
@pytest.mark.asyncio
async def test_suspended_run_resumes_after_restart(temp_db_path, runtime_factory):
    """
    Durability Test: an approval hook outlives the process that created it.
    """
    registry1 = SqliteRunRegistry(str(temp_db_path))
    await registry1.connect()
    rt1 = runtime_factory(registry1)
    notifier1 = RecordingNotifier()
    rt1.register(TeacherVerification(notifier=notifier1))

    run_id = await rt1.start(
        "teacher-verification", {"state": "CA", "msrId": "msr-7", "memberId": "12345"}
    )
    suspended = await rt1.join(run_id)
    token = suspended.checkpoint.waiting_on
    await rt1.shutdown()
    await registry1.close()

    assert suspended.status is RunStatus.SUSPENDED
    assert len(notifier1.sent) == 1

    registry2 = SqliteRunRegistry(str(temp_db_path))
    await registry2.connect()
    rt2 = runtime_factory(registry2)
    notifier2 = RecordingNotifier()
    rt2.register(TeacherVerification(notifier=notifier2))

    assert await rt2.recover() == [run_id]
    await rt2.resume(token, {"approved": True, "by": "msr@example.com"})
    run = await rt2.wait(run_id, "5s")

    assert run.status is RunStatus.COMPLETED
    assert run.result["approved"] is True
    assert run.result["verified"] is True
    # The notification step was committed before the restart
    assert notifier2.sent == []
    assert (await registry2.get_hook(token)).state is HookState.RESOLVED

    await rt2.shutdown()
    await registry2.close()


@pytest.mark.durability
@pytest.mark.asyncio
async def test_deadline_passed_while_down_takes_timeout_branch(temp_db_path, runtime_factory):
    registry1 = SqliteRunRegistry(str(temp_db_path))
    await registry1.connect()
    rt1 = runtime_factory(
        registry1, hook_timeouts={"teacher-verification-approval": "30ms"}
    )
    rt1.register(TeacherVerification(notifier=RecordingNotifier()))

    run_id = await rt1.start(
        "teacher-verification", {"state": "CA", "msrId": "msr-7", "memberId": "67890"}
    )
    # Shut down before the timer can fire
    await rt1.join(run_id)
    await rt1.shutdown()
    await registry1.close()

    registry2 = SqliteRunRegistry(str(temp_db_path))
    await registry2.connect()
    rt2 = runtime_factory(registry2)
    rt2.register(TeacherVerification(notifier=RecordingNotifier()))

    await asyncio.sleep(0.05)
    await rt2.recover()
    run = await rt2.wait(run_id, "5s")

    assert run.result["approved"] is False
    assert run.result["approval"] == {"approved": False, "comment": "Approval timeout"}
    assert run.result["error"] == "Verification not approved by MSR"

    await rt2.shutdown()
    await registry2.close()
