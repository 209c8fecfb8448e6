"""Tests for StepExecutor: retry bounds, error classification, timeouts and cancellation."""

import asyncio

import pytest

from pykairos.decorators import step
from pykairos.executor import Failed, StepExecutor, Succeeded, hash_input
from pykairos.models import ErrorKind, FatalError, RetryableError, RetryPolicy


class InstantExecutor(StepExecutor):
    def __init__(self, default_policy: RetryPolicy | None = None):
        super().__init__(default_policy)
        self.pauses: list[float] = []

    async def _pause(self, seconds: float) -> None:
        self.pauses.append(seconds)


def flaky(failures: int, error: Exception | None = None):
    """Step that fails ``failures`` times before returning "ok"."""
    calls = {"count": 0}

    async def run(input):
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error or RetryableError(f"transient #{calls['count']}")
        return "ok"

    run.calls = calls
    return run


# ==============================================================================
# Success and retry bounds
# ==============================================================================


@pytest.mark.asyncio
async def test_success_returns_immediately():
    """A step that succeeds is invoked exactly once."""
    executor = InstantExecutor()
    fn = flaky(0)

    outcome = await executor.execute(fn, {"x": 1}, max_retries=3)

    assert outcome == Succeeded("ok", attempts=1)
    assert fn.calls["count"] == 1
    assert executor.pauses == []


@pytest.mark.asyncio
async def test_retryable_error_recovers_within_limit():
    """Two transient failures, third attempt succeeds."""
    executor = InstantExecutor()
    fn = flaky(2)

    outcome = await executor.execute(fn, None, max_retries=3)

    assert isinstance(outcome, Succeeded)
    assert outcome.attempts == 3
    assert fn.calls["count"] == 3


@pytest.mark.asyncio
async def test_exhausted_retries_report_fatal_with_last_error():
    """max_retries bounds total invocations; the last message is kept."""
    executor = InstantExecutor()
    fn = flaky(10)

    outcome = await executor.execute(fn, None, max_retries=3)

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.FATAL
    assert outcome.attempts == 3
    assert outcome.error == "transient #3"
    assert fn.calls["count"] == 3
    assert len(executor.pauses) == 2


@pytest.mark.asyncio
async def test_max_retries_one_means_single_attempt():
    executor = InstantExecutor()
    fn = flaky(1)

    outcome = await executor.execute(fn, None, max_retries=1)

    assert isinstance(outcome, Failed)
    assert fn.calls["count"] == 1


@pytest.mark.asyncio
async def test_plain_exception_is_retryable():
    """Unclassified exceptions are treated as transient."""
    executor = InstantExecutor()
    fn = flaky(1, ValueError("boom"))

    outcome = await executor.execute(fn, None, max_retries=2)

    assert isinstance(outcome, Succeeded)
    assert fn.calls["count"] == 2


# ==============================================================================
# Fatal classification
# ==============================================================================


@pytest.mark.asyncio
async def test_fatal_error_is_never_retried():
    executor = InstantExecutor()
    fn = flaky(5, FatalError("Either memberId or (memberName + dateOfBirth) is required"))

    outcome = await executor.execute(fn, None, max_retries=5)

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.FATAL
    assert outcome.attempts == 1
    assert outcome.error == "Either memberId or (memberName + dateOfBirth) is required"
    assert fn.calls["count"] == 1
    assert executor.pauses == []


# ==============================================================================
# Backoff
# ==============================================================================


@pytest.mark.asyncio
async def test_backoff_follows_policy():
    policy = RetryPolicy(
        max_attempts=4, initial_delay_ms=100, max_delay_ms=250, backoff_multiplier=2.0
    )
    executor = InstantExecutor(policy)

    await executor.execute(flaky(10), None)

    assert executor.pauses == [0.1, 0.2, 0.25]


@pytest.mark.asyncio
async def test_retry_after_overrides_backoff():
    """A 429-style error's suggested delay wins over exponential backoff."""
    executor = InstantExecutor()
    fn = flaky(1, RetryableError("rate limited", retry_after=45))

    outcome = await executor.execute(fn, None, max_retries=2)

    assert isinstance(outcome, Succeeded)
    assert executor.pauses == [45.0]


@pytest.mark.asyncio
async def test_step_decorator_policy_is_used():
    """@step(max_retries=...) applies when the call does not override it."""
    executor = InstantExecutor()
    calls = {"count": 0}

    @step(max_retries=2)
    async def fetch(input):
        calls["count"] += 1
        raise RetryableError("down")

    outcome = await executor.execute(fetch, None)

    assert isinstance(outcome, Failed)
    assert calls["count"] == 2


# ==============================================================================
# Timeouts and cancellation
# ==============================================================================


@pytest.mark.asyncio
async def test_timeout_counts_as_retryable_failure():
    executor = InstantExecutor()
    calls = {"count": 0}

    @step(timeout="20ms", max_retries=2)
    async def slow(input):
        calls["count"] += 1
        if calls["count"] == 1:
            await asyncio.sleep(1)
        return "done"

    outcome = await executor.execute(slow, None)

    assert outcome == Succeeded("done", attempts=2)


@pytest.mark.asyncio
async def test_inner_cancellation_becomes_fatal():
    """A step whose own awaited work is cancelled fails without retries."""
    executor = InstantExecutor()
    calls = {"count": 0}

    async def aborted(input):
        calls["count"] += 1
        raise asyncio.CancelledError()

    outcome = await executor.execute(aborted, None, max_retries=3)

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.FATAL
    assert "cancelled" in outcome.error
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_cancelling_the_executor_task_propagates():
    executor = InstantExecutor()
    started = asyncio.Event()

    async def blocked(input):
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(executor.execute(blocked, None, max_retries=3))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


# ==============================================================================
# Input hashing
# ==============================================================================


def test_hash_input_ignores_key_order():
    assert hash_input({"a": 1, "b": [1, 2]}) == hash_input({"b": [1, 2], "a": 1})


def test_hash_input_distinguishes_values():
    assert hash_input({"domain": "nike.com"}) != hash_input({"domain": "reebok.com"})


def test_hash_input_fits_signed_64_bit():
    assert 0 <= hash_input({"x": "y" * 1000}) < 2**63
