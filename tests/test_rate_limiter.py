"""Tests for per-client admission control."""

import asyncio

import pytest

from redscout.services.rate_limiter import RateLimiter
from redscout.services.sweeper import Sweeper


@pytest.fixture
def limiter(clock):
    return RateLimiter(window_ms=2000, max_requests=1, clock=clock)


class TestAdmission:
    def test_first_request_admitted(self, limiter):
        result = limiter.admit("1.2.3.4")
        assert result.allowed is True
        assert result.retry_after_ms is None

    def test_second_request_in_window_denied(self, limiter, clock):
        limiter.admit("1.2.3.4")
        clock.advance(0.5)

        result = limiter.admit("1.2.3.4")
        assert result.allowed is False
        assert 0 < result.retry_after_ms <= 2000
        assert result.retry_after_ms == 1500

    def test_admitted_again_after_window(self, limiter, clock):
        limiter.admit("1.2.3.4")
        clock.advance(0.1)
        assert limiter.admit("1.2.3.4").allowed is False

        clock.advance(2.0)
        assert limiter.admit("1.2.3.4").allowed is True

    def test_identities_are_independent(self, limiter):
        assert limiter.admit("1.1.1.1").allowed is True
        assert limiter.admit("2.2.2.2").allowed is True
        assert limiter.admit("1.1.1.1").allowed is False

    def test_retry_after_is_never_zero(self, limiter, clock):
        limiter.admit("1.2.3.4")
        clock.advance(1.9999)
        result = limiter.admit("1.2.3.4")
        assert result.allowed is False
        assert result.retry_after_ms >= 1

    def test_max_requests_per_window(self, clock):
        limiter = RateLimiter(window_ms=1000, max_requests=3, clock=clock)
        assert [limiter.admit("ip").allowed for _ in range(4)] == [True, True, True, False]

    def test_denied_request_does_not_extend_window(self, limiter, clock):
        limiter.admit("ip")
        clock.advance(1.0)
        limiter.admit("ip")
        clock.advance(1.0)
        assert limiter.admit("ip").allowed is True


class TestSweep:
    def test_sweep_removes_idle_identities(self, limiter, clock):
        limiter.admit("idle")
        clock.advance(15)
        limiter.admit("active")
        clock.advance(5)

        assert limiter.sweep() == 1
        assert len(limiter) == 1

    def test_sweep_keeps_recent_identities(self, limiter, clock):
        limiter.admit("ip")
        clock.advance(19)
        assert limiter.sweep() == 0
        assert len(limiter) == 1


class TestSweeper:
    @pytest.mark.asyncio
    async def test_runs_periodically_until_stopped(self):
        calls = []
        sweeper = Sweeper("test", 0.01, lambda: calls.append(1) or 0)

        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert len(calls) >= 1
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_sweep_error_does_not_stop_loop(self):
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        sweeper = Sweeper("flaky", 0.01, flaky)
        sweeper.start()
        await asyncio.sleep(0.05)
        assert sweeper.running
        await sweeper.stop()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await Sweeper("idle", 1, lambda: 0).stop()
