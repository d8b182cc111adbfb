"""
Retry configuration for DOM extraction.

Destinations re-render their conversation subtree during client-side route
changes, which makes in-flight page.evaluate() calls fail with errors like
"Execution context was destroyed". Those failures clear up within a few
hundred milliseconds, so snapshot extraction retries them with a short
exponential backoff. Everything else propagates immediately.

The side-channel source fetch has its own bounded loop: a fixed number of
tries a fixed distance apart, treating an empty result as "not ready yet".

Citation page downloads for the `sources` command retry connection failures
and timeouts only; an HTTP error status is final.

Example:
    >>> @create_transient_retry_decorator()
    ... def snapshot():
    ...     # Raises AdapterError(kind="transient") while the DOM is swapping
    ...     pass
"""

from collections.abc import Callable
from typing import Any

import httpx
from tenacity import (
    Retrying,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from webchat_relay.exceptions import AdapterError

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# Total attempts for one snapshot extraction (1 initial + 2 retries)
TRANSIENT_MAX_ATTEMPTS = 3

# Backoff bounds between transient retries (seconds)
TRANSIENT_MIN_WAIT_SECONDS = 0.1
TRANSIENT_MAX_WAIT_SECONDS = 0.5

# Side-channel source fetch: attempts and fixed gap (seconds)
SIDE_CHANNEL_MAX_ATTEMPTS = 3
SIDE_CHANNEL_WAIT_SECONDS = 0.6

# Citation page download: attempts and base backoff (seconds)
FETCH_MAX_ATTEMPTS = 2
FETCH_WAIT_SECONDS = 1.0


def is_transient_adapter_error(error: BaseException) -> bool:
    return isinstance(error, AdapterError) and error.kind == "transient"


# ============================================================================
# RETRY FACTORIES
# ============================================================================


def create_transient_retry_decorator():
    """
    Create a tenacity decorator that retries transient adapter errors.

    - Max 3 attempts total
    - Exponential backoff between 0.1s and 0.5s
    - Only AdapterError(kind="transient") is retried
    - The last error is reraised unchanged
    """
    return retry(
        stop=stop_after_attempt(TRANSIENT_MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=0.1,
            min=TRANSIENT_MIN_WAIT_SECONDS,
            max=TRANSIENT_MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception(is_transient_adapter_error),
        reraise=True,
    )


def create_side_channel_retrying(
    sleep: Callable[[float], Any] | None = None,
    attempts: int = SIDE_CHANNEL_MAX_ATTEMPTS,
    wait_seconds: float = SIDE_CHANNEL_WAIT_SECONDS,
) -> Retrying:
    """
    Create a Retrying controller for the post-stabilization source fetch.

    Retries while the fetch raises or returns an empty list. After the last
    attempt tenacity raises RetryError, which callers turn into "no sources".

    Args:
        sleep: Sleep function (injected by tests and the stability detector)
        attempts: Total attempts
        wait_seconds: Fixed gap between attempts
    """
    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(wait_seconds),
        retry=retry_if_exception_type(Exception)
        | retry_if_result(lambda result: not result),
        **kwargs,
    )


def create_fetch_retry_decorator(wait_seconds: float = FETCH_WAIT_SECONDS):
    """
    Create a tenacity decorator for citation page downloads.

    - Max 2 attempts total
    - Exponential backoff starting at wait_seconds
    - Retry on: httpx.ConnectError, httpx.TimeoutException
    - Works on coroutine functions; the last error is reraised
    """
    return retry(
        stop=stop_after_attempt(FETCH_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=wait_seconds, min=wait_seconds, max=wait_seconds * 4),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        reraise=True,
    )
