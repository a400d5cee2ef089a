"""
Tests for rate_limit.py
"""
import pytest

from construction_client.errors import RateLimitedError
from construction_client.rate_limit import RateLimiter


class TestRateLimiter:
    def test_first_call_passes_and_is_recorded(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        limiter.check("search", 1000)
        assert limiter.last_invoked_at("search") == fake_clock.now

    def test_call_inside_window_rejected(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        limiter.check("search", 1000)
        fake_clock.advance(0.2)

        with pytest.raises(RateLimitedError) as exc_info:
            limiter.check("search", 1000)

        assert exc_info.value.key == "search"
        assert exc_info.value.retry_in_ms == pytest.approx(800, abs=1)
        assert exc_info.value.code == "ERR_RATE_LIMITED"
        assert "Rate limited, retry in" in str(exc_info.value)

    def test_rejection_does_not_move_window(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        start = fake_clock.now
        limiter.check("search", 1000)
        for _ in range(4):
            fake_clock.advance(0.2)
            with pytest.raises(RateLimitedError):
                limiter.check("search", 1000)
        assert limiter.last_invoked_at("search") == start

    # Boundary: exactly one window later
    def test_call_after_window_passes(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        start = fake_clock.now
        limiter.check("search", 1000)
        fake_clock.now = start + 1.0
        limiter.check("search", 1000)
        assert limiter.last_invoked_at("search") == start + 1.0

    def test_keys_are_independent(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        limiter.check("search", 1000)
        limiter.check("autocomplete", 1000)

    def test_reset_single_key(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        limiter.check("search", 1000)
        limiter.check("other", 1000)
        limiter.reset("search")
        limiter.check("search", 1000)
        assert limiter.last_invoked_at("other") is not None

    def test_reset_all(self, fake_clock):
        limiter = RateLimiter(fake_clock)
        limiter.check("search", 1000)
        limiter.reset()
        assert limiter.last_invoked_at("search") is None
