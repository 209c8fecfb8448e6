"""Duration parsing for hook timeouts, sleeps and step timeouts.

Accepts the literal forms workflow authors write ("50ms", "45s", "30m",
"2h", "1d"), plain numbers (seconds) and timedelta values.
"""

import re
from datetime import timedelta

_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}

_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)

Duration = str | int | float | timedelta


def parse_duration(value: Duration) -> timedelta:
    """
    Convert a duration literal into a timedelta.

    Raises:
        ValueError: If the value cannot be parsed or is negative.

    Example:
        parse_duration("2h")    # timedelta(hours=2)
        parse_duration("50ms")  # timedelta(milliseconds=50)
        parse_duration(1.5)     # timedelta(seconds=1.5)
    """
    if isinstance(value, timedelta):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    elif isinstance(value, int | float):
        result = timedelta(seconds=value)
    elif isinstance(value, str):
        match = _PATTERN.match(value)
        if match is None:
            raise ValueError(f"Invalid duration: {value!r}")
        amount, unit = match.groups()
        result = float(amount) * _UNITS[(unit or "s").lower()]
    else:
        raise ValueError(f"Invalid duration: {value!r}")

    if result < timedelta(0):
        raise ValueError(f"Duration must not be negative: {value!r}")
    return result


def to_seconds(value: Duration | None) -> float | None:
    """Duration as float seconds, passing None through."""
    if value is None:
        return None
    return parse_duration(value).total_seconds()
