"""
Retry policy with exponential backoff for database reads

Provides resilient retry logic for transient failures with:
- Exponential backoff (base 2.0)
- Jitter to prevent thundering herd
- Configurable max retries
- Database-specific exception classification
- Callback support for metrics integration

Usage:
    from dbdiff.utils.retry import RetryPolicy

    policy = RetryPolicy(max_retries=3, base_delay=0.5)
    rows = policy.call(connection.query, "SELECT 1")

    @policy
    def read_chunk():
        ...
"""

import logging
import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from ..errors import ReadError, TransientReadError

logger = logging.getLogger(__name__)


# Message fragments that mark an error as permanent even when the driver
# reports it through a generic OperationalError.
NON_RETRYABLE_PATTERNS = (
    "no such table",
    "no such column",
    "does not exist",
    "syntax error",
    "permission denied",
    "invalid object name",
    "unable to open database file",
)

RETRYABLE_PATTERNS = (
    "connection",
    "timeout",
    "timed out",
    "deadlock",
    "lock wait timeout",
    "lost connection",
    "server has gone away",
    "can't connect",
    "unable to connect",
    "connection refused",
    "connection reset",
    "broken pipe",
    "network error",
    "communication link failure",
    "connection closed",
    "connection terminated",
    "database is locked",
    "canceling statement due to statement timeout",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
    "transientreaderror",
    "poolexhaustederror",
)


def is_retryable_db_exception(exception: BaseException) -> bool:
    """
    Determine if a database exception is retryable

    Checks for common transient database errors that should be retried:
    - Connection errors
    - Timeout errors (statement timeouts, pool acquisition timeouts)
    - Lock timeout and deadlock errors

    Errors naming a missing object or a malformed statement are never
    retried, whatever their exception type.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    # The connection facade has already classified its errors
    if isinstance(exception, ReadError):
        return isinstance(exception, TransientReadError)

    exception_str = str(exception).lower()
    exception_type = type(exception).__name__.lower()

    for pattern in NON_RETRYABLE_PATTERNS:
        if pattern in exception_str:
            return False

    for pattern in RETRYABLE_PATTERNS:
        if pattern in exception_str or pattern in exception_type:
            return True

    return exception_type in RETRYABLE_EXCEPTION_NAMES


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Attempts are ``max_retries + 1`` in total. The delay before retry ``n``
    (0-based) is ``min(base_delay * exponential_base ** n, max_delay)``, with
    +/-25% jitter when enabled and a floor of ``min_delay``.
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True
    min_delay: float = 0.0
    retryable: Callable[[BaseException], bool] = is_retryable_db_exception
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def delays(self) -> Iterator[float]:
        """Yield the backoff schedule, one delay per retry."""
        for attempt in range(self.max_retries):
            delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)

            if self.jitter:
                jitter_amount = delay * 0.25
                delay = delay + random.uniform(-jitter_amount, jitter_amount)

            yield max(self.min_delay, delay)

    def call(
        self,
        func: Callable[..., Any],
        *args: Any,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Call ``func`` until it succeeds, a non-retryable error occurs, or
        retries are exhausted.

        Args:
            func: Callable to invoke
            *args: Positional arguments for func
            on_retry: Callback(attempt, exception, delay) called before each retry
            **kwargs: Keyword arguments for func

        Returns:
            Whatever func returns

        Raises:
            The last exception raised by func
        """
        func_name = getattr(func, "__name__", "function")
        schedule = self.delays()
        attempt = 0

        while True:
            try:
                return func(*args, **kwargs)

            except Exception as e:
                if not self.retryable(e):
                    logger.debug(
                        f"Non-retryable error in {func_name}: {type(e).__name__}: {e}"
                    )
                    raise

                delay = next(schedule, None)
                if delay is None:
                    logger.error(
                        f"Max retries ({self.max_retries}) exceeded for {func_name}: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                attempt += 1
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} failed for {func_name}: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )

                if on_retry:
                    try:
                        on_retry(attempt, e, delay)
                    except Exception as callback_error:
                        logger.error(f"Error in retry callback: {callback_error}")

                self.sleep(delay)

    def __call__(self, func: Callable) -> Callable:
        """Use the policy as a decorator."""

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return self.call(func, *args, **kwargs)

        return wrapper


NO_RETRY = RetryPolicy(max_retries=0, jitter=False)
