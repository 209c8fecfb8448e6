"""
Property-based tests for pykairos using Hypothesis.

These tests generate many cases to find edge cases in:
- Hook token normalization
- Duration parsing
- Retry policy calculations
- Replay input hashing
- Registry hook resolution
"""

from datetime import timedelta
from urllib.parse import quote

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from pykairos.core import normalize_token, parse_duration
from pykairos.executor import Failed, StepExecutor, Succeeded, hash_input
from pykairos.models import Hook, RetryableError, RetryPolicy, utcnow
from pykairos.storage import InMemoryRunRegistry

TOKEN_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789:-_."

tokens = st.text(alphabet=TOKEN_ALPHABET, min_size=1, max_size=60)
junk = st.text(alphabet="'\",", min_size=0, max_size=5)


# ==============================================================================
# PROPERTY 1: Token Normalization
# ==============================================================================


@pytest.mark.property
@given(raw=st.text(max_size=80))
def test_normalize_token_is_idempotent(raw):
    """
    Property: normalizing twice equals normalizing once.

    Whatever a browser or mail client did to the token, a second pass
    has nothing left to undo.
    """
    once = normalize_token(raw)
    assert normalize_token(once) == once


@pytest.mark.property
@given(token=tokens, trailing=junk, padding=st.sampled_from(["", " ", "\n", "  \t"]))
def test_normalize_token_strips_trailing_junk(token, trailing, padding):
    """Property: quote/comma junk and surrounding whitespace never survive."""
    assert normalize_token(f"{padding}{token}{trailing}{padding}") == token


@pytest.mark.property
@given(token=tokens, times=st.integers(min_value=1, max_value=3))
def test_normalize_token_undoes_percent_encoding(token, times):
    """Property: single and repeated percent-encoding converge on the token."""
    encoded = token
    for _ in range(times):
        encoded = quote(encoded, safe="")
    assert normalize_token(encoded) == token


# ==============================================================================
# PROPERTY 2: Duration Parsing
# ==============================================================================


@pytest.mark.property
@given(
    amount=st.integers(min_value=0, max_value=100_000),
    unit=st.sampled_from(["ms", "s", "m", "h", "d"]),
)
def test_duration_literals(amount, unit):
    expected = {
        "ms": timedelta(milliseconds=amount),
        "s": timedelta(seconds=amount),
        "m": timedelta(minutes=amount),
        "h": timedelta(hours=amount),
        "d": timedelta(days=amount),
    }[unit]

    assert parse_duration(f"{amount}{unit}") == expected
    assert parse_duration(f" {amount} {unit.upper()} ") == expected


@pytest.mark.property
@given(seconds=st.integers(min_value=0, max_value=10**6))
def test_duration_plain_numbers_are_seconds(seconds):
    assert parse_duration(seconds) == timedelta(seconds=seconds)
    assert parse_duration(str(seconds)) == timedelta(seconds=seconds)


@pytest.mark.property
@given(value=st.text(alphabet="abcxyz!?-", min_size=1, max_size=10))
def test_duration_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_duration(value)


# ==============================================================================
# PROPERTY 3: Retry Policy Calculations
# ==============================================================================


@pytest.mark.property
@given(
    max_attempts=st.integers(min_value=1, max_value=100),
    initial_delay_ms=st.integers(min_value=1, max_value=10000),
    max_delay_ms=st.integers(min_value=100, max_value=60000),
    backoff_multiplier=st.floats(min_value=1.0, max_value=5.0),
    attempt=st.integers(min_value=1, max_value=50),
)
def test_retry_policy_delay_properties(
    max_attempts, initial_delay_ms, max_delay_ms, backoff_multiplier, attempt
):
    """
    Property: Retry delays follow exponential backoff with ceiling.

    1. Returns None when attempt >= max_attempts
    2. Delay never exceeds max_delay
    3. Attempt 1 waits exactly initial_delay
    4. Delays never shrink from one attempt to the next
    """
    assume(max_delay_ms >= initial_delay_ms)

    policy = RetryPolicy(
        max_attempts=max_attempts,
        initial_delay_ms=initial_delay_ms,
        max_delay_ms=max_delay_ms,
        backoff_multiplier=backoff_multiplier,
    )

    delay = policy.delay_for_attempt(attempt)

    if attempt >= max_attempts:
        assert delay is None
        return

    assert delay is not None
    assert 0 <= delay <= max_delay_ms
    if attempt == 1:
        assert delay == initial_delay_ms

    following = policy.delay_for_attempt(attempt + 1)
    if following is not None:
        assert following >= delay


@pytest.mark.property
@pytest.mark.asyncio
@given(
    max_attempts=st.integers(min_value=1, max_value=6),
    failures=st.integers(min_value=0, max_value=8),
)
@settings(max_examples=50, deadline=None)
async def test_executor_attempts_never_exceed_limit(max_attempts, failures):
    """
    Property: a step failing N times succeeds iff N < max_attempts,
    and is never invoked more than max_attempts times.
    """

    class NoSleep(StepExecutor):
        async def _pause(self, seconds: float) -> None:
            pass

    calls = 0

    async def flaky(input):
        nonlocal calls
        calls += 1
        if calls <= failures:
            raise RetryableError(f"attempt {calls} failed")
        return "ok"

    outcome = await NoSleep().execute(flaky, None, max_retries=max_attempts)

    assert calls <= max_attempts
    if failures < max_attempts:
        assert outcome == Succeeded("ok", failures + 1)
    else:
        assert isinstance(outcome, Failed)
        assert outcome.attempts == max_attempts
        assert outcome.error == f"attempt {max_attempts} failed"


# ==============================================================================
# PROPERTY 4: Replay Input Hashing
# ==============================================================================


json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=20),
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=12,
)


@pytest.mark.property
@given(value=st.dictionaries(st.text(max_size=8), json_values, max_size=6))
def test_hash_input_ignores_key_order(value):
    """Property: the replay hash depends on content, not dict insertion order."""
    reordered = dict(reversed(list(value.items())))
    assert hash_input(reordered) == hash_input(value)


@pytest.mark.property
@given(value=json_values)
def test_hash_input_fits_sqlite_integer(value):
    assert 0 <= hash_input(value) < 2**63


# ==============================================================================
# PROPERTY 5: Hook Resolution
# ==============================================================================


@pytest.mark.property
@pytest.mark.asyncio
@given(attempts=st.lists(st.booleans(), min_size=1, max_size=20))
@settings(max_examples=50, deadline=None)
async def test_hook_settles_exactly_once(attempts):
    """
    Property: whatever sequence of resolves and expiries arrives, exactly
    one of them settles the hook and the stored payload is the winner's.
    """
    registry = InMemoryRunRegistry()
    await registry.create_hook(
        Hook(
            token="run:approval",
            run_id="run",
            kind="teacher-verification-approval",
            stage="request_approval",
            expires_at=utcnow() + timedelta(hours=1),
        )
    )

    winners = []
    for index, resolve in enumerate(attempts):
        if resolve:
            settled = await registry.resolve_hook("run:approval", {"n": index})
        else:
            settled = await registry.expire_hook("run:approval")
        if settled is not None:
            winners.append((index, settled))

    assert len(winners) == 1
    index, hook = winners[0]
    assert index == 0
    assert hook.payload == ({"n": 0} if attempts[0] else None)
