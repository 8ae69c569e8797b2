import random

import pytest

from dialogcast.utils.retry import RetryPolicy, call_with_retry


def test_returns_after_transient_failures():
    calls = []
    sleeps = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    policy = RetryPolicy(max_attempts=3, base_delay=1.0, jitter=0.0)
    assert call_with_retry(flaky, policy, sleep=sleeps.append) == "ok"
    assert sleeps == [1.0, 2.0]


def test_raises_last_error_when_exhausted():
    errors = [ConnectionError("first"), ConnectionError("second")]

    def always_fails():
        raise errors.pop(0)

    with pytest.raises(ConnectionError, match="second"):
        call_with_retry(always_fails, RetryPolicy(max_attempts=2, jitter=0.0), sleep=lambda s: None)


def test_non_retryable_error_is_immediate():
    calls = []

    def fails():
        calls.append(1)
        raise KeyError("fatal")

    with pytest.raises(KeyError):
        call_with_retry(
            fails,
            RetryPolicy(max_attempts=5),
            retry_on=lambda e: isinstance(e, ConnectionError),
            sleep=lambda s: None,
        )
    assert len(calls) == 1


def test_delay_is_capped_and_jittered():
    policy = RetryPolicy(base_delay=1.0, jitter=0.1, max_delay=5.0)
    rng = random.Random(0)
    for attempt in range(6):
        delay = policy.delay_for(attempt, rng)
        expected = min(2 ** attempt, 5.0)
        assert expected * 0.9 <= delay <= expected * 1.1
