"""
Retry logic with exponential backoff for registry requests.

The registry is slow and occasionally returns 5xx or rate-limit responses
under load; these helpers retry such requests a bounded number of times.
"""

import time
import functools
from typing import Callable, Iterator, Type, Tuple, Optional

# Retry on server errors, timeouts and rate limiting
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class RetryableStatusError(Exception):
    """Raised for an HTTP status that is worth another attempt."""

    def __init__(self, status_code: int, url: str = ""):
        super().__init__(f"Retryable HTTP status {status_code}: {url}")
        self.status_code = status_code
        self.url = url


def backoff_delays(
    max_retries: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> Iterator[float]:
    """Yield the sleep before each retry, capped at max_delay."""
    delay = base_delay
    for _ in range(max_retries):
        yield min(delay, max_delay)
        delay *= exponential_base


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Retry the decorated call while it raises one of ``exceptions``.

    The call runs once, then up to ``max_retries`` more times, sleeping the
    ``backoff_delays`` schedule in between. ``on_retry(attempt, error, delay)``
    fires before each sleep. When the schedule runs out, RetryError is raised
    with the last error as its ``__cause__``. Exceptions outside ``exceptions``
    propagate immediately.

    Example:
        @exponential_backoff(max_retries=3, exceptions=(requests.exceptions.Timeout,))
        def search(term):
            return requests.get(SEARCH_URL, params={"search": term}, timeout=15)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delays = backoff_delays(max_retries, base_delay, max_delay, exponential_base)
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    pause = next(delays, None)
                    if pause is None:
                        raise RetryError(f"Failed after {attempt} attempts: {e}") from e
                    if on_retry:
                        on_retry(attempt, e, pause)
                    time.sleep(pause)

        return wrapper
    return decorator


def should_retry_http_status(status_code: int) -> bool:
    """True for statuses in RETRYABLE_STATUS_CODES."""
    return status_code in RETRYABLE_STATUS_CODES
