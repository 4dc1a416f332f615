"""Tests for the token-bucket rate limiter."""

import threading

import pytest

from scimgate.core.clock import FrozenClock
from scimgate.core.config import RateLimitConfig
from scimgate.provisioning.ratelimit import TokenBucketLimiter


def test_burst_then_refill():
    clock = FrozenClock()
    limiter = TokenBucketLimiter(requests_per_minute=60, burst_size=3, clock=clock)

    assert [limiter.allow("k") for _ in range(4)] == [True, True, True, False]
    assert limiter.retry_after("k") == pytest.approx(1.0)

    clock.advance(1.0)
    assert limiter.allow("k") is True
    assert limiter.allow("k") is False


def test_refill_is_capped_at_burst():
    clock = FrozenClock()
    limiter = TokenBucketLimiter(requests_per_minute=600, burst_size=2, clock=clock)
    limiter.allow("k")
    clock.advance(3600)
    assert [limiter.allow("k") for _ in range(3)] == [True, True, False]


def test_keys_are_independent():
    limiter = TokenBucketLimiter(requests_per_minute=60, burst_size=1, clock=FrozenClock())
    assert limiter.allow("token:aaa")
    assert not limiter.allow("token:aaa")
    assert limiter.allow("token:bbb")
    assert limiter.retry_after("token:ccc") == 0.0


def test_lru_eviction():
    limiter = TokenBucketLimiter(requests_per_minute=60, burst_size=1, clock=FrozenClock(), max_keys=2)
    limiter.allow("a")
    limiter.allow("b")
    limiter.allow("a")  # refreshes "a"
    limiter.allow("c")  # evicts "b"
    assert len(limiter) == 2
    # An evicted key starts over with a full bucket
    assert limiter.allow("b") is True
    assert limiter.allow("c") is False


def test_disabled_limiter_allows_everything():
    limiter = TokenBucketLimiter.from_config(RateLimitConfig(enabled=False, burst_size=1))
    assert all(limiter.allow("k") for _ in range(50))
    assert limiter.retry_after("k") == 0.0


def test_reset():
    limiter = TokenBucketLimiter(requests_per_minute=60, burst_size=1, clock=FrozenClock())
    limiter.allow("k")
    limiter.reset("k")
    assert limiter.allow("k") is True
    limiter.reset()
    assert len(limiter) == 0


def test_thread_safety_never_over_admits():
    limiter = TokenBucketLimiter(requests_per_minute=60, burst_size=100, clock=FrozenClock())
    admitted = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            if limiter.allow("shared"):
                with lock:
                    admitted.append(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(admitted) == 100


def test_rejects_invalid_config():
    with pytest.raises(ValueError):
        TokenBucketLimiter(requests_per_minute=0, burst_size=1)
