"""Unit tests for the sliding-window rate limiter."""

import threading

import pytest

from cfimage.core.rate_limiter import RateLimitDecision, SlidingWindowRateLimiter


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(window_seconds=60, max_requests=10, clock=clock)


class TestAdmit:
    """Tests for SlidingWindowRateLimiter.admit."""

    def test_first_request_allowed(self, limiter):
        """Test that an unseen client is admitted."""
        assert limiter.admit("1.2.3.4") == RateLimitDecision(allowed=True, retry_after_seconds=0)

    def test_max_requests_allowed_then_denied(self, limiter, clock):
        """Test that the (N+1)th request within the window is denied."""
        for _ in range(10):
            assert limiter.admit("client").allowed
            clock.advance(1)

        decision = limiter.admit("client")

        assert not decision.allowed
        assert decision.retry_after_seconds > 0

    def test_retry_after_counts_from_oldest_entry(self, limiter, clock):
        """Test retry-after is the time until the oldest entry leaves the window."""
        for _ in range(10):
            limiter.admit("client")
        clock.advance(15.2)

        decision = limiter.admit("client")

        # Oldest entry expires 60s after it was recorded: ceil(60 - 15.2) = 45.
        assert decision.retry_after_seconds == 45

    def test_retry_after_is_at_least_one(self, limiter, clock):
        """Test that retry-after never rounds down to zero."""
        for _ in range(10):
            limiter.admit("client")
        clock.advance(59.9999)

        decision = limiter.admit("client")

        assert not decision.allowed
        assert decision.retry_after_seconds == 1

    def test_denied_request_is_not_recorded(self, limiter, clock):
        """Test that denials do not extend the client's window."""
        for _ in range(10):
            limiter.admit("client")
        limiter.admit("client")
        limiter.admit("client")

        assert limiter.count("client") == 10

    def test_admitted_after_window_elapses(self, limiter, clock):
        """Test that a client is admitted again once the window has passed."""
        for _ in range(10):
            limiter.admit("client")
        clock.advance(60)

        assert limiter.admit("client").allowed
        assert limiter.count("client") == 1

    def test_sliding_window_frees_one_slot_at_a_time(self, limiter, clock):
        """Test that expiring entries free slots individually."""
        limiter.admit("client")
        clock.advance(30)
        for _ in range(9):
            limiter.admit("client")
        clock.advance(30)

        # The first entry has expired; the other nine remain.
        assert limiter.admit("client").allowed
        assert not limiter.admit("client").allowed

    def test_clients_are_independent(self, limiter):
        """Test that one client's usage does not affect another."""
        for _ in range(10):
            limiter.admit("a")

        assert not limiter.admit("a").allowed
        assert limiter.admit("b").allowed

    def test_explicit_now_overrides_clock(self):
        """Test that callers can pass the current time explicitly."""
        limiter = SlidingWindowRateLimiter(window_seconds=10, max_requests=1)
        assert limiter.admit("k", now=100.0).allowed
        assert not limiter.admit("k", now=105.0).allowed
        assert limiter.admit("k", now=110.0).allowed


class TestConcurrency:
    """Tests for concurrent admission."""

    def test_concurrent_admits_never_exceed_max(self):
        """Test that racing threads cannot admit more than max_requests."""
        limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=10)
        results: list[bool] = []
        results_lock = threading.Lock()
        barrier = threading.Barrier(50)

        def worker():
            barrier.wait()
            allowed = limiter.admit("shared").allowed
            with results_lock:
                results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 10
        assert results.count(False) == 40


class TestConstructionAndReset:
    """Tests for configuration checks and reset."""

    @pytest.mark.parametrize(("window", "max_requests"), [(0, 10), (-1, 10), (60, 0)])
    def test_invalid_configuration(self, window, max_requests):
        """Test that nonsensical limits are refused."""
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_seconds=window, max_requests=max_requests)

    def test_reset_single_client(self, limiter):
        """Test that reset(key) clears only that client."""
        for _ in range(10):
            limiter.admit("a")
            limiter.admit("b")

        limiter.reset("a")

        assert limiter.admit("a").allowed
        assert not limiter.admit("b").allowed

    def test_reset_all(self, limiter):
        """Test that reset() clears every client."""
        for _ in range(10):
            limiter.admit("a")
        limiter.reset()

        assert limiter.count("a") == 0
