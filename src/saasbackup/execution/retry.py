"""
Retry strategies for transient endpoint failures.

A strategy answers two questions: may we retry after this error, and how
long do we wait first. Only errors classified retryable by
:func:`saasbackup.core.errors.is_retryable` (timeouts, connection errors,
5xx, 429) are ever retried; auth, 404 and data-shape errors fail on the
first attempt.

``max_retries`` counts retries, not attempts: ``max_retries=3`` allows four
calls in total.

Example:
    >>> ctx = RetryContext(ExponentialBackoff(max_retries=3, base_delay=0.5))
    >>> records = ctx.run(connector.fetch, "contacts")
    >>> ctx.attempts
    1
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from saasbackup.core.errors import get_retry_after, is_retryable
from saasbackup.execution.models import utcnow

T = TypeVar("T")


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    max_retries: int

    @abstractmethod
    def next_delay(self, retry: int) -> float:
        """Delay in seconds before retry number *retry* (0 = first retry)."""
        ...

    def should_retry(self, retries_done: int, error: BaseException | None = None) -> bool:
        """True if another retry is allowed after *retries_done* retries."""
        if retries_done >= self.max_retries:
            return False
        return error is None or is_retryable(error)


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** retry), max_delay) ± jitter

    Attributes:
        max_retries: Maximum number of retries
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness so parallel jobs don't retry in lockstep
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, retry: int) -> float:
        delay = min(self.base_delay * (self.multiplier ** retry), self.max_delay)
        if self.jitter and delay > 0:
            jitter_amount = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
        return delay


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail immediately."""

    max_retries: int = 0

    def next_delay(self, retry: int) -> float:
        return 0.0

    def should_retry(self, retries_done: int, error: BaseException | None = None) -> bool:
        return False


@dataclass
class RetryContext:
    """Runs a callable under a strategy and records every failed attempt.

    A server-supplied ``retry_after`` (HTTP 429) lengthens the wait up to
    ``max_retry_after`` seconds.
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, BaseException, float], None] | None = None
    max_retry_after: float = 60.0

    attempt: int = field(default=0, init=False)
    last_error: BaseException | None = field(default=None, init=False)
    started_at: datetime = field(default_factory=utcnow, init=False)
    errors: list[tuple[int, BaseException, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of calls made so far."""
        return self.attempt

    @property
    def retries(self) -> int:
        return max(0, self.attempt - 1)

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()

    def delay_for(self, error: BaseException) -> float:
        delay = self.strategy.next_delay(self.retries)
        retry_after = get_retry_after(error)
        if retry_after is not None:
            delay = max(delay, min(float(retry_after), self.max_retry_after))
        return delay

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call *func* until it succeeds or retrying is no longer allowed.

        Raises:
            The last exception once retries are exhausted or the error is
            not retryable.
        """
        while True:
            self.attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utcnow()))
                if not self.strategy.should_retry(self.retries, e):
                    raise
                delay = self.delay_for(e)
                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)
                if delay > 0:
                    time.sleep(delay)


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
]
