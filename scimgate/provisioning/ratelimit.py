"""In-memory token-bucket rate limiter keyed by token id or client IP."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

from scimgate.core.clock import Clock, SystemClock
from scimgate.core.config import RateLimitConfig


@dataclass
class _Bucket:
    tokens: float
    updated: float


class TokenBucketLimiter:
    """``burst_size`` capacity refilled at ``requests_per_minute / 60`` per second.

    Buckets live in an LRU map; the least recently seen key is evicted once
    ``max_keys`` is exceeded (an evicted key simply starts with a full bucket).
    """

    def __init__(
        self,
        requests_per_minute: int = 600,
        burst_size: int = 100,
        *,
        clock: Clock | None = None,
        max_keys: int = 10_000,
        enabled: bool = True,
    ) -> None:
        if requests_per_minute <= 0 or burst_size <= 0 or max_keys <= 0:
            raise ValueError("rate limit values must be positive")
        self._rate = requests_per_minute / 60.0
        self._capacity = float(burst_size)
        self._clock = clock or SystemClock()
        self._max_keys = max_keys
        self._enabled = enabled
        self._buckets: OrderedDict[str, _Bucket] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig, clock: Clock | None = None) -> TokenBucketLimiter:
        return cls(
            config.requests_per_minute,
            config.burst_size,
            clock=clock,
            max_keys=config.max_keys,
            enabled=config.enabled,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _refill(self, key: str) -> _Bucket:
        """Caller holds the lock."""
        now = self._clock.monotonic()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=self._capacity, updated=now)
            self._buckets[key] = bucket
            while len(self._buckets) > self._max_keys:
                self._buckets.popitem(last=False)
        else:
            elapsed = max(now - bucket.updated, 0.0)
            bucket.tokens = min(self._capacity, bucket.tokens + elapsed * self._rate)
            bucket.updated = now
            self._buckets.move_to_end(key)
        return bucket

    def allow(self, key: str) -> bool:
        """Take one token for *key*; False when the bucket is empty."""
        if not self._enabled:
            return True
        with self._lock:
            bucket = self._refill(key)
            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False

    def retry_after(self, key: str) -> float:
        """Seconds until *key* has a whole token again (0.0 if it has one now)."""
        if not self._enabled:
            return 0.0
        with self._lock:
            bucket = self._refill(key)
            if bucket.tokens >= 1.0:
                return 0.0
            return (1.0 - bucket.tokens) / self._rate

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)

    def __len__(self) -> int:
        return len(self._buckets)
