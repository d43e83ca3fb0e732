"""
Tests for the fixed-window rate limiter.

These tests verify:
- The (m+1)-th request in a window is rejected
- A fresh window opens once the previous one has passed
- Concurrent callers cannot over-admit
- Endpoints keep independent counters
- Client identity is derived from proxy headers
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

from api.rate_limit import FixedWindowRateLimiter, get_client_ip


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestFixedWindow:
    """Test suite for admission decisions."""

    def test_admits_up_to_max_then_rejects(self):
        """Test that the (m+1)-th call within the window is rejected."""
        limiter = FixedWindowRateLimiter(clock=FakeClock())

        results = [limiter.admit("1.2.3.4", 5, 300_000) for _ in range(6)]

        assert results == [True, True, True, True, True, False]

    def test_rejection_leaves_count_unchanged(self):
        """Test that rejected calls do not extend or grow the window."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.check("k", 1, 60)

        first = limiter.check("k", 1, 60)
        clock.advance(30)
        second = limiter.check("k", 1, 60)

        assert not first.allowed and not second.allowed
        assert first.reset_at == second.reset_at
        assert second.retry_after == 30

    def test_window_expiry_starts_fresh_count(self):
        """Test that the call after the window elapses is admitted with count 1."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)
        for _ in range(5):
            assert limiter.admit("c", 5, 300_000)
        assert not limiter.admit("c", 5, 300_000)

        clock.advance(300.001)
        decision = limiter.check("c", 5, 300)

        assert decision.allowed
        assert decision.remaining == 4
        assert decision.reset_at == clock.now + 300

    def test_call_exactly_at_reset_time_is_still_in_window(self):
        """Test that a window only expires once now is past reset_at."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.admit("c", 1, 10_000)

        clock.advance(10)

        assert limiter.admit("c", 1, 10_000) is False

    def test_retry_after_counts_down_to_reset(self):
        """Test that retry_after is the whole seconds until the window resets."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.check("note:ip", 1, 600)

        decision = limiter.check("note:ip", 1, 600)

        assert not decision.allowed
        assert decision.retry_after == 600

    def test_clients_are_independent(self):
        """Test that one client's usage does not affect another."""
        limiter = FixedWindowRateLimiter(clock=FakeClock())
        limiter.admit("a", 1, 1_000)

        assert limiter.admit("a", 1, 1_000) is False
        assert limiter.admit("b", 1, 1_000) is True

    def test_endpoint_namespaces_do_not_interfere(self):
        """Test that chat and note counters for the same IP are separate."""
        limiter = FixedWindowRateLimiter(clock=FakeClock())

        assert limiter.check("note:9.9.9.9", 1, 600).allowed
        assert not limiter.check("note:9.9.9.9", 1, 600).allowed
        assert limiter.check("chat:9.9.9.9", 5, 300).allowed

    def test_prune_drops_only_expired_entries(self):
        """Test that pruning removes entries that count as absent anyway."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock, prune_threshold=2)
        limiter.admit("old", 1, 1_000)
        clock.advance(0.5)
        limiter.admit("live", 1, 10_000)
        clock.advance(1)

        limiter.admit("new", 1, 1_000)

        assert len(limiter) == 2
        assert limiter.admit("live", 1, 10_000) is False


class TestConcurrency:
    """Test suite for atomic read-modify-write."""

    def test_threads_cannot_over_admit(self):
        """Test that racing threads admit exactly max_requests."""
        limiter = FixedWindowRateLimiter()

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: limiter.admit("ip", 5, 60_000), range(200)))

        assert results.count(True) == 5

    def test_last_slot_is_taken_once(self):
        """Test that two rapid calls at count == m-1 are not both admitted."""
        limiter = FixedWindowRateLimiter()
        for _ in range(4):
            limiter.admit("ip", 5, 60_000)

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(lambda _: limiter.admit("ip", 5, 60_000), range(2)))

        assert sorted(results) == [False, True]

    async def test_interleaved_tasks_cannot_over_admit(self):
        """Test that concurrent event-loop tasks admit exactly max_requests."""
        limiter = FixedWindowRateLimiter()

        async def request() -> bool:
            await asyncio.sleep(0)
            return limiter.admit("ip", 3, 60_000)

        results = await asyncio.gather(*(request() for _ in range(20)))

        assert results.count(True) == 3


class TestClientIp:
    """Test suite for client identity derivation."""

    @staticmethod
    def _request(headers: dict, host: str | None = "10.0.0.1"):
        return SimpleNamespace(
            headers=headers,
            client=SimpleNamespace(host=host) if host else None,
        )

    def test_uses_first_forwarded_for_entry(self):
        request = self._request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2"})
        assert get_client_ip(request) == "203.0.113.5"

    def test_falls_back_to_real_ip(self):
        request = self._request({"X-Real-IP": "198.51.100.9"})
        assert get_client_ip(request) == "198.51.100.9"

    def test_falls_back_to_peer_address(self):
        assert get_client_ip(self._request({})) == "10.0.0.1"

    def test_unknown_without_any_source(self):
        assert get_client_ip(self._request({}, host=None)) == "unknown"
