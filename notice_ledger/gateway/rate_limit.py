"""
Per-collector sliding-window rate limiter.

Responsibility:
    Bounds how many requests one collector identity may make within any
    window of ``window_ms`` milliseconds.  It is the only back-pressure of
    the collector API and is independent of the ledger's own concurrency
    control.

Architecture position:
    Ledger > Gateway.  One instance per process, built by the composition
    root; state lives in memory, so each service instance enforces its own
    budget.

Invariants enforced:
    - At most ``max_requests`` accepted hits per key in any sliding window.
    - Refused hits are not counted.
    - Thread-safe: one lock guards all buckets.
"""

import threading
from collections import deque
from dataclasses import dataclass

from notice_ledger.domain.clock import Clock
from notice_ledger.exceptions import RateLimitedError
from notice_ledger.logging_config import get_logger

logger = get_logger("gateway.rate_limit")


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_ms: int


class SlidingWindowRateLimiter:
    """One bucket of recent hit timestamps per key."""

    def __init__(self, window_ms: int, max_requests: int, clock: Clock):
        if window_ms <= 0 or max_requests <= 0:
            raise ValueError("window_ms and max_requests must be positive")
        self._window_ms = window_ms
        self._max_requests = max_requests
        self._clock = clock
        self._buckets: dict[str, deque[int]] = {}
        self._lock = threading.Lock()

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def max_requests(self) -> int:
        return self._max_requests

    def check(self, key: str) -> RateDecision:
        """Count a hit for ``key`` if the budget allows it."""
        now = self._clock.epoch_millis()
        with self._lock:
            self._evict_idle(now)
            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] <= now - self._window_ms:
                bucket.popleft()

            if len(bucket) >= self._max_requests:
                retry_after = bucket[0] + self._window_ms - now
                return RateDecision(allowed=False, remaining=0, retry_after_ms=retry_after)

            bucket.append(now)
            return RateDecision(
                allowed=True,
                remaining=self._max_requests - len(bucket),
                retry_after_ms=0,
            )

    def hit(self, key: str) -> None:
        """Like ``check`` but raise RateLimitedError when refused."""
        decision = self.check(key)
        if not decision.allowed:
            logger.warning(
                "rate_limit_exceeded",
                extra={"rate_key": key, "retry_after_ms": decision.retry_after_ms},
            )
            raise RateLimitedError(key, decision.retry_after_ms)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def _evict_idle(self, now: int) -> None:
        idle = [
            key
            for key, bucket in self._buckets.items()
            if not bucket or bucket[-1] <= now - self._window_ms
        ]
        for key in idle:
            del self._buckets[key]
