"""Tests for retry strategies and RetryContext."""

from __future__ import annotations

import pytest

from saasbackup.core.errors import (
    AuthenticationError,
    DataShapeError,
    RateLimitError,
    ServerError,
    TransientNetworkError,
)
from saasbackup.execution.retry import (
    ExponentialBackoff,
    NoRetry,
    RetryContext,
)


class Flaky:
    """Raises the queued errors in order, then returns ``value``."""

    def __init__(self, *errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def immediate(max_retries):
    return ExponentialBackoff(max_retries=max_retries, base_delay=0, jitter=False)


class TestExponentialBackoff:
    def test_delays_double_until_cap(self):
        strategy = ExponentialBackoff(base_delay=1.0, max_delay=5.0, jitter=False)
        assert [strategy.next_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(0) <= 5.0

    def test_should_retry_respects_budget_and_classification(self):
        strategy = ExponentialBackoff(max_retries=2)
        assert strategy.should_retry(0, ServerError("503"))
        assert strategy.should_retry(1, ServerError("503"))
        assert not strategy.should_retry(2, ServerError("503"))
        assert not strategy.should_retry(0, AuthenticationError("401"))
        assert not strategy.should_retry(0, DataShapeError("bad"))

    def test_builtin_network_errors_are_retryable(self):
        assert ExponentialBackoff().should_retry(0, ConnectionError("reset"))
        assert not ExponentialBackoff().should_retry(0, ValueError("nope"))


class TestRetryContext:
    def test_exhaustion_makes_max_retries_plus_one_attempts(self):
        func = Flaky(*[ServerError("503")] * 10)
        ctx = RetryContext(immediate(max_retries=3))

        with pytest.raises(ServerError):
            ctx.run(func)

        assert func.calls == 4
        assert ctx.attempts == 4
        assert ctx.retries == 3
        assert len(ctx.errors) == 4

    def test_non_retryable_fails_on_first_attempt(self):
        func = Flaky(AuthenticationError("401"))
        ctx = RetryContext(immediate(max_retries=3))

        with pytest.raises(AuthenticationError):
            ctx.run(func)
        assert func.calls == 1

    def test_recovers_after_transient_errors(self):
        func = Flaky(TransientNetworkError("reset"), ServerError("502"), value=[1, 2])
        ctx = RetryContext(immediate(max_retries=3))

        assert ctx.run(func) == [1, 2]
        assert ctx.attempts == 3
        assert isinstance(ctx.last_error, ServerError)

    def test_arguments_forwarded(self):
        seen = []
        ctx = RetryContext(NoRetry())
        ctx.run(lambda *a, **kw: seen.append((a, kw)), "contacts", since="1")
        assert seen == [(("contacts",), {"since": "1"})]

    def test_on_retry_callback(self):
        events = []
        func = Flaky(ServerError("503"), ServerError("503"))
        ctx = RetryContext(
            immediate(max_retries=3),
            on_retry=lambda attempt, error, delay: events.append((attempt, type(error).__name__, delay)),
        )

        ctx.run(func)

        assert events == [(1, "ServerError", 0), (2, "ServerError", 0)]

    def test_retry_after_lengthens_delay(self):
        ctx = RetryContext(ExponentialBackoff(base_delay=0.5, jitter=False), max_retry_after=10.0)
        assert ctx.delay_for(RateLimitError(retry_after=3)) == 3.0
        assert ctx.delay_for(RateLimitError(retry_after=120)) == 10.0
        assert ctx.delay_for(ServerError("503")) == 0.5

    def test_sleeps_between_attempts(self, monkeypatch):
        slept = []
        monkeypatch.setattr("saasbackup.execution.retry.time.sleep", slept.append)
        func = Flaky(ServerError("503"), ServerError("503"))

        RetryContext(ExponentialBackoff(base_delay=1.0, jitter=False)).run(func)

        assert slept == [1.0, 2.0]

    def test_no_retry(self):
        func = Flaky(ServerError("503"))
        with pytest.raises(ServerError):
            RetryContext(NoRetry()).run(func)
        assert func.calls == 1

