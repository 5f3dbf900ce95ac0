"""
Per-connector rate limiting.

Every connector instance owns exactly one limiter and calls
``acquire(block=True)`` before each HTTP request it issues (test call, every
page of every endpoint). Limiters are never shared between connectors, so
jobs for different sources throttle independently.

Two implementations honour the same contract:

- :class:`IntervalRateLimiter` (default): consecutive requests are at least
  ``min_interval`` seconds apart. The sleep is the fetch loop's only
  suspension point and doubles as backpressure.
- :class:`TokenBucketRateLimiter`: allows bursts up to ``capacity`` then
  settles to ``rate`` requests per second, for providers that publish a
  burst allowance.

Examples:
    >>> limiter = IntervalRateLimiter(min_interval=0.25)
    >>> limiter.acquire(block=True)   # first call never waits
    True
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from saasbackup.catalog.models import RateLimitPolicy


class RateLimiter(ABC):
    """Abstract base for rate limiters."""

    @abstractmethod
    def acquire(self, tokens: int = 1, block: bool = True) -> bool:
        """Take permission for *tokens* requests.

        Returns:
            True if acquired. With ``block=False`` returns False instead of
            waiting.
        """
        ...

    @abstractmethod
    def get_wait_time(self, tokens: int = 1) -> float:
        """Seconds to wait before *tokens* requests may be issued (0 = now)."""
        ...


@dataclass
class IntervalRateLimiter(RateLimiter):
    """Enforces a minimum gap between consecutive requests.

    Attributes:
        min_interval: Seconds between the starts of two requests.
    """

    min_interval: float

    _last_request: float | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        if self.min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {self.min_interval}")

    def _wait_locked(self, tokens: int) -> float:
        if self._last_request is None:
            return self.min_interval * (tokens - 1)
        return max(0.0, self._last_request + self.min_interval * tokens - time.monotonic())

    def acquire(self, tokens: int = 1, block: bool = True) -> bool:
        with self._lock:
            wait = self._wait_locked(tokens)
            if wait > 0:
                if not block:
                    return False
                # Held while sleeping: requests on one connector are serial.
                time.sleep(wait)
            self._last_request = time.monotonic()
            return True

    def get_wait_time(self, tokens: int = 1) -> float:
        with self._lock:
            return self._wait_locked(tokens)


@dataclass
class TokenBucketRateLimiter(RateLimiter):
    """Token bucket rate limiter.

    Tokens are added at a fixed rate up to capacity.
    Allows bursts up to capacity, then limits to rate.

    Attributes:
        rate: Tokens added per second
        capacity: Maximum tokens (burst size)
    """

    rate: float
    capacity: float

    _tokens: float = field(default=0.0, init=False)
    _last_update: float = field(default_factory=time.monotonic, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        if self.rate <= 0:
            raise ValueError(f"rate must be > 0, got {self.rate}")
        self._tokens = self.capacity

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._last_update) * self.rate)
        self._last_update = now

    def _wait_locked(self, tokens: int) -> float:
        self._refill()
        if self._tokens >= tokens:
            return 0.0
        return (tokens - self._tokens) / self.rate

    def acquire(self, tokens: int = 1, block: bool = True) -> bool:
        while True:
            with self._lock:
                wait = self._wait_locked(tokens)
                if wait == 0.0:
                    self._tokens -= tokens
                    return True
            if not block:
                return False
            time.sleep(wait)

    def get_wait_time(self, tokens: int = 1) -> float:
        with self._lock:
            return self._wait_locked(tokens)

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens


def limiter_for(policy: RateLimitPolicy, *, min_interval: float | None = None) -> RateLimiter:
    """Default limiter for a platform: an interval derived from its policy.

    *min_interval* overrides the derived gap (tests pass 0).
    """
    interval = policy.min_interval if min_interval is None else min_interval
    return IntervalRateLimiter(min_interval=interval)


__all__ = [
    "RateLimiter",
    "IntervalRateLimiter",
    "TokenBucketRateLimiter",
    "limiter_for",
]
