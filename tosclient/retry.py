"""Bounded retry for connection failures that happened before sending.

The client core does not retry service errors or failures that may have
reached the server. The one safe case is a connection that could not be
established (refused, DNS failure, connect timeout): nothing was sent, so
the request can be repeated.

Retryable:
- NetworkError raised before any byte was written (before_send=True)

Not retryable:
- Everything else, including read timeouts and all HTTP status errors
"""

from typing import Any, Callable, Optional

from tosclient.context import Context, background
from tosclient.errors import NetworkError
from tosclient.log import get_logger

logger = get_logger(__name__)

# Upper bound for max_retry_count
MAX_RETRY_COUNT = 10

# Base delay in seconds, doubled after each attempt
DEFAULT_BACKOFF_BASE = 0.1

# Cap for a single backoff delay in seconds
MAX_BACKOFF = 10.0


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error happened before the request was sent.

    Args:
        error: The exception that was raised.

    Returns:
        True if repeating the request cannot duplicate a server-side effect.
    """
    return isinstance(error, NetworkError) and error.before_send


def backoff_delay(attempt: int, base: float = DEFAULT_BACKOFF_BASE) -> float:
    """Delay before retry number attempt (1-indexed)."""
    return min(MAX_BACKOFF, base * (2 ** (attempt - 1)))


def retry_with_backoff(
    func: Callable[..., Any],
    max_retries: int = 0,
    ctx: Optional[Context] = None,
    base: float = DEFAULT_BACKOFF_BASE,
    args: tuple = (),
    kwargs: Optional[dict] = None,
) -> Any:
    """Execute a function, retrying connection failures with backoff.

    Args:
        func: The function to execute.
        max_retries: Retries after the first attempt, clamped to
            [0, MAX_RETRY_COUNT].
        ctx: Caller context; backoff sleeps never outlast its deadline.
        base: Base backoff delay in seconds.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.

    Returns:
        The return value of func if successful.

    Raises:
        Exception: The last error if it is not retryable or retries are
            exhausted; CanceledError/DeadlineExceededError if ctx fires
            while waiting.
    """
    if kwargs is None:
        kwargs = {}
    ctx = ctx or background()
    max_retries = max(0, min(max_retries, MAX_RETRY_COUNT))

    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except NetworkError as e:
            if not is_retryable_error(e) or attempt >= max_retries:
                raise

            attempt += 1
            delay = backoff_delay(attempt, base)
            logger.info("retry_request", attempt=attempt, delay=delay, error=str(e))
            ctx.wait(delay)
