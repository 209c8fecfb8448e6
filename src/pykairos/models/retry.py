"""
Retry policy configuration and step error taxonomy.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates retry behavior, allowing different retry strategies
per step without modifying the step execution code.

Error taxonomy:
- RetryableError: transient failure (5xx, rate limiting). Retried up to the
  step's attempt limit, optionally after a caller-suggested delay.
- FatalError: unrecoverable for this run (bad input, business rule
  rejection). Never retried.
- StepCancelledError: the operation was aborted and retrying it is moot.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for step retry behavior.

    Controls how many times a step is attempted and the backoff between
    attempts.

    Examples:
        # Simple: just specify max attempts (uses standard delays)
        policy = RetryPolicy.with_max_attempts(3)

        # Named policy: predefined sensible defaults
        policy = RetryPolicy.STANDARD

        # Custom policy: full control
        policy = RetryPolicy(
            max_attempts=5,
            initial_delay_ms=1000,
            max_delay_ms=30000,
            backoff_multiplier=2.0
        )
    """

    max_attempts: int
    """Maximum number of attempts (including the first try).

    For example, max_attempts = 3 means:
    - Attempt 1: immediate (first try)
    - Attempt 2: after initial_delay
    - Attempt 3: after initial_delay * backoff_multiplier
    """

    initial_delay_ms: int
    """Initial delay before the first retry in milliseconds."""

    max_delay_ms: int
    """Maximum delay between retries in milliseconds (caps exponential backoff)."""

    backoff_multiplier: float
    """Multiplier for exponential backoff.

    Each retry delay is calculated as:
    min(initial_delay * backoff_multiplier^(attempt-1), max_delay)
    """

    # =========================================================================
    # Predefined Policies
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
        AGGRESSIVE: RetryPolicy
    else:
        # Set after class definition
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)
        AGGRESSIVE = cast("RetryPolicy", None)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryPolicy:
        """
        Create a policy with custom max_attempts (uses standard delays).

        Example:
            policy = RetryPolicy.with_max_attempts(5)
        """
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=1000,
            max_delay_ms=30000,
            backoff_multiplier=2.0,
        )

    def attempts(self, max_attempts: int) -> RetryPolicy:
        """Same backoff, different attempt limit."""
        return replace(self, max_attempts=max_attempts)

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the next retry attempt.

        Uses exponential backoff: initial_delay * backoff_multiplier^(attempt-1)
        capped at max_delay.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds before the next retry, or None if no more retries.

        Example:
            policy = RetryPolicy.STANDARD
            delay1 = policy.delay_for_attempt(1)  # Returns 1000 (1s)
            delay2 = policy.delay_for_attempt(2)  # Returns 2000 (2s)
            delay3 = policy.delay_for_attempt(3)  # Returns None (max attempts)
        """
        if attempt >= self.max_attempts:
            return None

        exponent = attempt - 1
        delay_ms = self.initial_delay_ms * self.backoff_multiplier**exponent
        return int(min(delay_ms, self.max_delay_ms))

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier})"
        )


RetryPolicy.NONE = RetryPolicy(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0
)

RetryPolicy.STANDARD = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=1000,  # 1 second
    max_delay_ms=30000,  # 30 seconds
    backoff_multiplier=2.0,
)

RetryPolicy.AGGRESSIVE = RetryPolicy(
    max_attempts=10,
    initial_delay_ms=100,  # 100 milliseconds
    max_delay_ms=10000,  # 10 seconds
    backoff_multiplier=1.5,
)


# =============================================================================
# Step errors
# =============================================================================


class StepError(Exception):
    """
    Base class for errors raised by step functions with retry control.

    Plain exceptions raised by a step are treated as retryable.
    """

    def is_retryable(self) -> bool:
        return True


class RetryableError(StepError):
    """
    Transient step failure.

    Example:
        # Rate limited: honor the upstream's suggested delay
        raise RetryableError("429 from registry", retry_after=45)
    """

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after
        """Suggested delay in seconds before the next attempt."""


class FatalError(StepError):
    """
    Permanent step failure. Aborts the run without further attempts.

    Example:
        raise FatalError("Either memberId or (memberName + dateOfBirth) is required")
    """

    def is_retryable(self) -> bool:
        return False


class StepCancelledError(FatalError):
    """The step's operation was aborted (e.g. by the user)."""
