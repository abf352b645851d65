"""Tests for the sliding-window rate limiter (notice_ledger/gateway/rate_limit.py)."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from notice_ledger.domain.clock import DeterministicClock
from notice_ledger.exceptions import ErrorKind, RateLimitedError
from notice_ledger.gateway.rate_limit import SlidingWindowRateLimiter


@pytest.fixture
def clock():
    return DeterministicClock()


class TestSlidingWindow:
    def test_allows_up_to_budget(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=1000, max_requests=3, clock=clock)
        decisions = [limiter.check("c1") for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]
        assert limiter.check("c1").allowed is False

    def test_retry_after_points_at_oldest_hit(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=1000, max_requests=2, clock=clock)
        limiter.check("c1")
        clock.advance_ms(400)
        limiter.check("c1")
        decision = limiter.check("c1")
        assert decision.allowed is False
        assert decision.retry_after_ms == 600

    def test_window_slides(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=1000, max_requests=2, clock=clock)
        limiter.check("c1")
        clock.advance_ms(500)
        limiter.check("c1")
        clock.advance_ms(500)
        # first hit left the window, second is still inside it
        assert limiter.check("c1").allowed is True
        assert limiter.check("c1").allowed is False

    def test_refused_hits_are_not_counted(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=1000, max_requests=1, clock=clock)
        limiter.check("c1")
        for _ in range(5):
            assert limiter.check("c1").allowed is False
        clock.advance_ms(1000)
        assert limiter.check("c1").allowed is True

    def test_keys_are_independent(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=1000, max_requests=1, clock=clock)
        assert limiter.check("c1").allowed
        assert limiter.check("c2").allowed
        assert not limiter.check("c1").allowed

    def test_hit_raises_rate_limited(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=60_000, max_requests=1, clock=clock)
        limiter.hit("c1")
        with pytest.raises(RateLimitedError) as exc_info:
            limiter.hit("c1")
        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert exc_info.value.retry_after_ms == 60_000

    def test_reset(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=1000, max_requests=1, clock=clock)
        limiter.check("c1")
        limiter.reset()
        assert limiter.check("c1").allowed

    @pytest.mark.parametrize("window_ms, max_requests", [(0, 1), (1000, 0)])
    def test_invalid_bounds(self, clock, window_ms, max_requests):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_ms, max_requests, clock)

    def test_concurrent_hits_never_exceed_budget(self, clock):
        limiter = SlidingWindowRateLimiter(window_ms=60_000, max_requests=25, clock=clock)
        with ThreadPoolExecutor(max_workers=8) as pool:
            decisions = list(pool.map(lambda _: limiter.check("c1"), range(200)))
        assert sum(1 for d in decisions if d.allowed) == 25
