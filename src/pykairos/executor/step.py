"""
Step execution with bounded retries.

The StepExecutor runs one step function and reports the result as a value:
Succeeded or Failed. Retryable failures never leave the executor until the
attempt limit is exhausted; at that point the last error is reported as
FATAL. Nothing here touches storage: the Runtime commits the returned
outcome to the run's checkpoint.

Example:
    ```python
    executor = StepExecutor()
    outcome = await executor.execute(fetch_registry, {"memberId": "12345"}, max_retries=3)

    match outcome:
        case Succeeded(value):
            print(value)
        case Failed(error, kind, attempts):
            print(f"{kind} after {attempts} attempts: {error}")
    ```
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import xxhash

from pykairos.core.commands import StepFn
from pykairos.models import (
    ErrorKind,
    RetryableError,
    RetryPolicy,
    StepCancelledError,
    StepError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Succeeded:
    """Step returned a value."""

    value: Any
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    """
    Step failed.

    Attributes:
        error: Message of the last error.
        kind: FATAL for fatal errors and for exhausted retries. RETRYABLE only
            appears when a caller inspects a single attempt.
        attempts: Number of attempts made.
    """

    error: str
    kind: ErrorKind = ErrorKind.FATAL
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False


StepOutcome = Succeeded | Failed


def step_name(fn: StepFn) -> str:
    return getattr(fn, "_step_name", None) or getattr(fn, "__name__", type(fn).__name__)


def hash_input(value: Any) -> int:
    """
    Hash a step input for replay checks.

    Canonical JSON (sorted keys, compact separators) hashed with xxh64,
    masked to a signed 64-bit range so it fits an SQLite INTEGER.
    """
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return xxhash.xxh64(canonical.encode("utf-8")).intdigest() & 0x7FFFFFFFFFFFFFFF


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class StepExecutor:
    """
    Runs step functions with at-least-once retry semantics.

    Retry configuration is resolved in this order: the ``max_retries``
    argument, the step's own ``@step`` policy, then ``default_policy``.

    Args:
        default_policy: Policy for steps that declare none
            (``Settings.retry_policy()`` when built by the Runtime).
    """

    def __init__(self, default_policy: RetryPolicy | None = None):
        self.default_policy = default_policy or RetryPolicy.STANDARD

    def policy_for(self, fn: StepFn, max_retries: int | None = None) -> RetryPolicy:
        policy = getattr(fn, "_step_retry_policy", None) or self.default_policy
        if max_retries is not None:
            policy = policy.attempts(max_retries)
        return policy

    async def execute(
        self, fn: StepFn, input: Any = None, max_retries: int | None = None
    ) -> StepOutcome:
        """
        Invoke ``fn(input)`` until it succeeds, fails fatally, or runs out of attempts.

        Classification:
        - FatalError (or any StepError whose is_retryable() is False): fail
          immediately.
        - RetryableError, any other exception, or a per-step timeout: retry
          after ``retry_after`` if the error suggests one, otherwise after the
          policy's exponential backoff.
        - asyncio.CancelledError raised by the step: converted to a fatal
          StepCancelledError. If the executor's own task is being cancelled,
          the cancellation propagates instead.
        """
        name = step_name(fn)
        policy = self.policy_for(fn, max_retries)
        timeout = getattr(fn, "_step_timeout", None)
        attempt = 0

        while True:
            attempt += 1
            try:
                if timeout is not None:
                    value = await asyncio.wait_for(fn(input), timeout)
                else:
                    value = await fn(input)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if task is not None and task.cancelling():
                    raise
                error: BaseException = StepCancelledError(f"Step {name} was cancelled")
                logger.error(f"Step {name} cancelled on attempt {attempt}")
                return Failed(_describe(error), ErrorKind.FATAL, attempt)
            except TimeoutError:
                error = RetryableError(f"Step {name} timed out after {timeout}s")
            except StepError as e:
                if not e.is_retryable():
                    logger.error(f"Step {name} failed fatally on attempt {attempt}: {e}")
                    return Failed(_describe(e), ErrorKind.FATAL, attempt)
                error = e
            except Exception as e:
                error = e
            else:
                if attempt > 1:
                    logger.info(f"Step {name} succeeded on attempt {attempt}")
                return Succeeded(value, attempt)

            delay = self._retry_delay(policy, attempt, error)
            if delay is None:
                logger.error(
                    f"Step {name} exhausted {policy.max_attempts} attempts: {_describe(error)}"
                )
                return Failed(_describe(error), ErrorKind.FATAL, attempt)

            logger.warning(
                f"Step {name} attempt {attempt}/{policy.max_attempts} failed: "
                f"{_describe(error)}; retrying in {delay:.3f}s"
            )
            await self._pause(delay)

    def _retry_delay(self, policy: RetryPolicy, attempt: int, error: BaseException) -> float | None:
        """Seconds to wait before the next attempt, or None when attempts are exhausted."""
        if attempt >= policy.max_attempts:
            return None
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return float(retry_after)
        delay_ms = policy.delay_for_attempt(attempt)
        return (delay_ms or 0) / 1000.0

    async def _pause(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
