"""
UTC timestamp utilities for webchat-relay.

All timestamps MUST be in UTC with explicit timezone markers.
Persisted guard state, session metadata and error telemetry all use these
helpers so that records from different runs compare correctly.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- parse_timestamp(): Parse ISO 8601 string to datetime
- millis_between(): Signed millisecond distance between two datetimes
- format_wait(): Human-readable rendering of a wait in milliseconds

Examples:
    >>> from webchat_relay.utils.time import utc_now, utc_timestamp
    >>> now = utc_now()
    >>> now.tzinfo
    datetime.timezone.utc
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
"""

import math
from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    This is the canonical way to get current time in the codebase.
    The risk guard and session store take it as their default clock,
    so freezegun can pin it in tests.

    Returns:
        datetime: Current UTC time with tzinfo=timezone.utc

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ (with colons in time)
    Example: 2025-11-02T08:30:45Z

    Returns:
        str: ISO 8601 formatted timestamp in UTC
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse ISO 8601 timestamp string to timezone-aware datetime.

    Accepts second or sub-second precision, as long as the string ends
    with 'Z'.

    Args:
        timestamp_str: ISO 8601 timestamp string ending with 'Z'

    Returns:
        datetime: Timezone-aware datetime in UTC

    Raises:
        ValueError: If timestamp doesn't end with 'Z' or has invalid format

    Examples:
        >>> parse_timestamp('2025-11-02T08:30:45Z').year
        2025
        >>> parse_timestamp('2025-11-02T08:30:45')
        Traceback (most recent call last):
        ...
        ValueError: Timestamp must end with 'Z' (UTC): 2025-11-02T08:30:45
    """
    if not timestamp_str.endswith("Z"):
        raise ValueError(f"Timestamp must end with 'Z' (UTC): {timestamp_str}")

    try:
        return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid ISO 8601 timestamp format: {timestamp_str}") from e


def millis_between(start: datetime, end: datetime) -> int:
    """
    Return milliseconds from start to end (negative if end is earlier).

    Args:
        start: Timezone-aware start time
        end: Timezone-aware end time

    Returns:
        int: Signed millisecond difference

    Example:
        >>> from datetime import timedelta
        >>> t = utc_now()
        >>> millis_between(t, t + timedelta(seconds=1.5))
        1500
    """
    return round((end - start).total_seconds() * 1000)


def format_wait(wait_ms: int | None) -> str:
    """
    Render a wait duration the way guard denials show it to users.

    Examples:
        >>> format_wait(725_000)
        '~12m 5s'
        >>> format_wait(42_300)
        '~43s'
        >>> format_wait(None)
        'unknown'
    """
    if wait_ms is None:
        return "unknown"

    total_seconds = max(0, math.ceil(wait_ms / 1000))
    minutes, seconds = divmod(total_seconds, 60)
    if minutes <= 0:
        return f"~{seconds}s"
    return f"~{minutes}m {seconds}s"
