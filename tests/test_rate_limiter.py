"""
Tests for per-provider sliding-window admission.
"""

from curriculum_engine.llm.rate_limiter import RateLimiter


class TestRateLimiter:
    def test_admits_up_to_limit(self, clock):
        limiter = RateLimiter({"gemini": 2}, clock=clock)

        assert limiter.try_acquire("gemini") is True
        assert limiter.try_acquire("gemini") is True
        assert limiter.try_acquire("gemini") is False
        assert limiter.remaining("gemini") == 0

    def test_window_slides(self, clock):
        limiter = RateLimiter({"gemini": 2}, clock=clock)
        limiter.try_acquire("gemini")
        clock.advance(30)
        limiter.try_acquire("gemini")

        clock.advance(30)
        # first request has left the window, second has not
        assert limiter.remaining("gemini") == 1
        assert limiter.try_acquire("gemini") is True
        assert limiter.try_acquire("gemini") is False

    def test_rejected_requests_are_not_counted(self, clock):
        limiter = RateLimiter({"openai": 1}, clock=clock)
        limiter.try_acquire("openai")
        for _ in range(5):
            limiter.try_acquire("openai")

        clock.advance(60)
        assert limiter.remaining("openai") == 1

    def test_providers_are_independent(self, clock):
        limiter = RateLimiter({"gemini": 1, "openai": 1}, clock=clock)

        assert limiter.try_acquire("gemini") is True
        assert limiter.try_acquire("openai") is True
        assert limiter.try_acquire("gemini") is False

    def test_unconfigured_provider_is_unlimited(self, clock):
        limiter = RateLimiter({"gemini": 1}, clock=clock)

        assert all(limiter.try_acquire("anthropic") for _ in range(100))
        assert limiter.remaining("anthropic") is None
