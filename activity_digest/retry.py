"""Bounded retry with exponential backoff and rate-limit waiting."""

import logging
import math
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from activity_digest.errors import (
    RATE_LIMIT_MARGIN_SECONDS,
    RateLimitedError,
    SourceError,
    TerminalError,
)

T = TypeVar("T")

logger = logging.getLogger("activity_digest.retry")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a failing operation.

    Attributes:
        max_retries: Retries after the first attempt; total attempts are
            at most max_retries + 1.
        initial_delay: Seconds before the first retry; doubled for each
            following retry.
        max_rate_limit_waits: How many rate-limit waits a single call may
            absorb. None means unbounded.
        rate_limit_margin: Seconds added on top of a provider reset time.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_rate_limit_waits: Optional[int] = None
    rate_limit_margin: float = RATE_LIMIT_MARGIN_SECONDS

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be > 0, got {self.initial_delay}")
        if self.max_rate_limit_waits is not None and self.max_rate_limit_waits < 0:
            raise ValueError(
                f"max_rate_limit_waits must be >= 0, got {self.max_rate_limit_waits}"
            )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (0-indexed)."""
        return self.initial_delay * (2 ** attempt)


# Single cooldown-and-retry for call sites without a retry budget
THROTTLE_ONCE = RetryPolicy(max_retries=0, max_rate_limit_waits=1)


def _rate_limit_wait(
    error: Exception, policy: RetryPolicy, clock: Callable[[], float]
) -> Optional[float]:
    """Wait for a rate-limit error, or None when it must count as transient."""
    if not isinstance(error, RateLimitedError):
        return None
    return error.wait_seconds(now=clock(), margin=policy.rate_limit_margin)


def retry_call(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    *,
    description: Optional[str] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> T:
    """Run an operation, retrying classified failures.

    TerminalError propagates at once. RateLimitedError is waited out
    without using up an attempt (a rate limit without any reset hint is
    treated as transient). TransientError uses an attempt and backs off
    exponentially. Exceptions outside the SourceError hierarchy are not
    classified and propagate unchanged.

    Args:
        operation: Zero-argument callable to run.
        policy: Retry policy; defaults to RetryPolicy().
        description: Name used in log messages.
        sleep: Sleep function, defaults to time.sleep.
        clock: Epoch clock, defaults to time.time.

    Returns:
        The operation's return value.

    Raises:
        SourceError: The terminal error, or the last transient error once
            attempts are exhausted.
    """
    policy = policy or RetryPolicy()
    sleep = sleep or time.sleep
    clock = clock or time.time
    name = description or getattr(operation, "__name__", "operation")

    attempt = 0
    rate_limit_waits = 0
    while True:
        try:
            return operation()
        except TerminalError:
            raise
        except SourceError as e:
            wait = _rate_limit_wait(e, policy, clock)
            if wait is not None:
                if (
                    policy.max_rate_limit_waits is not None
                    and rate_limit_waits >= policy.max_rate_limit_waits
                ):
                    raise
                rate_limit_waits += 1
                logger.warning(
                    f"Rate limit hit during {name}, waiting {math.ceil(wait)}s..."
                )
                sleep(wait)
                continue

            if attempt >= policy.max_retries:
                raise
            delay = policy.backoff_delay(attempt)
            logger.warning(
                f"{name} failed (attempt {attempt + 1}/{policy.max_retries + 1}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            sleep(delay)
            attempt += 1


def with_throttle_awareness(
    operation: Callable[[], T],
    *,
    description: Optional[str] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> T:
    """Run an operation once, waiting out at most one rate limit.

    On a rate-limit error with a reset time or cooldown the call waits
    and is re-issued exactly once. Any other error, or a second failure,
    propagates.
    """
    return retry_call(
        operation, THROTTLE_ONCE, description=description, sleep=sleep, clock=clock
    )


def retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_rate_limit_waits: Optional[int] = None,
) -> Callable:
    """Retry decorator with exponential backoff and rate-limit waits.

    Args:
        max_retries: Retries after the first attempt.
        initial_delay: Initial delay between retries in seconds.
        max_rate_limit_waits: Cap on rate-limit waits per call (None = no cap).

    Returns:
        Decorated function.
    """
    policy = RetryPolicy(
        max_retries=max_retries,
        initial_delay=initial_delay,
        max_rate_limit_waits=max_rate_limit_waits,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return retry_call(
                lambda: func(*args, **kwargs), policy, description=func.__name__
            )
        return wrapper
    return decorator
