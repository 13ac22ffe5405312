"""
Tests for the fixed-window RateLimiter.

Tests admission within a window, window reset, per-key isolation and
atomicity under concurrent callers.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from connlog.core.ratelimit import AdmissionDecision, RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimiter:
    """Test the fixed-window RateLimiter."""

    def test_first_limit_requests_admitted(self) -> None:
        """Test the first `limit` requests in a window are admitted."""

        clock = FakeClock()
        limiter = RateLimiter(limit=3, window_seconds=60, clock=clock)

        decisions = [limiter.admit("203.0.113.7") for _ in range(3)]
        assert all(d.allowed for d in decisions)

    def test_request_over_limit_rejected(self) -> None:
        """Test the (limit+1)th request is rejected with a positive delay within the window."""

        clock = FakeClock()
        limiter = RateLimiter(limit=3, window_seconds=60, clock=clock)

        for _ in range(3):
            assert limiter.admit("203.0.113.7").allowed
            clock.advance(5)

        decision = limiter.admit("203.0.113.7")
        assert decision.allowed is False
        assert 0 < decision.retry_after <= 60
        assert decision.retry_after == pytest.approx(45)

    def test_first_admission_reports_full_window(self) -> None:
        """Test a freshly opened window reports the whole window as time to reset."""

        limiter = RateLimiter(limit=1, window_seconds=30, clock=FakeClock())
        assert limiter.admit("a") == AdmissionDecision(allowed=True, retry_after=30)

    def test_window_reset_after_expiry(self) -> None:
        """Test an exhausted key is admitted again once the window elapsed."""

        clock = FakeClock()
        limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)

        limiter.admit("a")
        limiter.admit("a")
        assert not limiter.admit("a").allowed

        clock.advance(60)
        decision = limiter.admit("a")
        assert decision.allowed
        assert decision.retry_after == 60

        # The new window counts from the admitting request
        assert limiter.admit("a").allowed
        assert not limiter.admit("a").allowed

    def test_window_still_closed_just_before_reset(self) -> None:
        """Test the window is still enforced right before it expires."""

        clock = FakeClock()
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)

        limiter.admit("a")
        clock.advance(59.5)
        decision = limiter.admit("a")
        assert not decision.allowed
        assert decision.retry_after == pytest.approx(0.5)
        assert decision.retry_after_seconds == 1

    def test_per_key_isolation(self) -> None:
        """Test exhausting one key leaves other keys untouched."""

        limiter = RateLimiter(limit=1, window_seconds=60, clock=FakeClock())

        assert limiter.admit("198.51.100.1").allowed
        assert not limiter.admit("198.51.100.1").allowed
        assert limiter.admit("198.51.100.2").allowed
        assert len(limiter) == 2

    def test_rejections_do_not_extend_window(self) -> None:
        """Test rejected attempts neither count nor move the reset instant."""

        clock = FakeClock()
        limiter = RateLimiter(limit=1, window_seconds=10, clock=clock)

        limiter.admit("a")
        for _ in range(5):
            clock.advance(1)
            limiter.admit("a")

        clock.advance(5)
        assert limiter.admit("a").allowed

    @pytest.mark.parametrize("retry_after,expected", [(0.01, 1), (1.0, 1), (1.2, 2), (59.9, 60)])
    def test_retry_after_seconds_rounding(self, retry_after: float, expected: int) -> None:
        """Test the advisory delay is rounded up and never below one second."""

        assert AdmissionDecision(allowed=False, retry_after=retry_after).retry_after_seconds == expected

    @pytest.mark.parametrize("limit,window", [(0, 60), (-1, 60), (5, 0), (5, -10)])
    def test_invalid_configuration(self, limit: int, window: float) -> None:
        """Test non-positive limit or window is refused."""

        with pytest.raises(ValueError):
            RateLimiter(limit=limit, window_seconds=window)

    def test_concurrent_admissions_never_exceed_limit(self) -> None:
        """Test N parallel attempts on one key admit exactly min(N, limit)."""

        limit = 5
        attempts = 64
        limiter = RateLimiter(limit=limit, window_seconds=60)
        barrier = threading.Barrier(attempts)

        def attempt() -> bool:
            barrier.wait()
            return limiter.admit("192.0.2.10").allowed

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            results = list(pool.map(lambda _: attempt(), range(attempts)))

        assert results.count(True) == limit
        assert results.count(False) == attempts - limit

    def test_concurrent_admissions_below_limit(self) -> None:
        """Test fewer parallel attempts than the limit are all admitted."""

        limiter = RateLimiter(limit=10, window_seconds=60)
        barrier = threading.Barrier(4)

        def attempt() -> bool:
            barrier.wait()
            return limiter.admit("192.0.2.11").allowed

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: attempt(), range(4)))

        assert results == [True] * 4


class TestSweep:
    """Test eviction of expired visitors."""

    def test_sweep_removes_only_expired_keys(self) -> None:
        """Test keys with a live window survive the sweep."""

        clock = FakeClock()
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)

        limiter.admit("old")
        clock.advance(30)
        limiter.admit("recent")
        clock.advance(30)

        assert limiter.sweep() == 1
        assert len(limiter) == 1
        assert not limiter.admit("recent").allowed

    def test_swept_key_starts_fresh_window(self) -> None:
        """Test a key removed by the sweep is admitted like a new visitor."""

        clock = FakeClock()
        limiter = RateLimiter(limit=1, window_seconds=10, clock=clock)

        limiter.admit("a")
        clock.advance(10)
        assert limiter.sweep() == 1
        assert len(limiter) == 0
        assert limiter.admit("a").allowed

    def test_sweep_empty(self) -> None:
        """Test sweeping with no visitors is harmless."""

        assert RateLimiter(limit=1, window_seconds=1).sweep() == 0
