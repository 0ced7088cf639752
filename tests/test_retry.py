"""
Tests for the retry_with_backoff decorator.
"""

from unittest.mock import AsyncMock, patch

import pytest

from curriculum_engine.utils.retry import retry_with_backoff


def scripted(*outcomes):
    """A function returning or raising the given outcomes in order, counting calls."""
    remaining = list(outcomes)

    def fetch():
        fetch.calls += 1
        outcome = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    fetch.calls = 0
    return fetch


class TestRetryWithBackoff:
    def test_succeeds_after_transient_failures(self):
        fetch = scripted(ConnectionError("a"), ConnectionError("b"), "ok")
        wrapped = retry_with_backoff(max_retries=3, initial_delay=1.0, backoff_factor=2.0)(fetch)

        with patch("curriculum_engine.utils.retry.time.sleep") as sleep:
            assert wrapped() == "ok"

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
        assert fetch.calls == 3

    def test_delay_is_capped(self):
        fetch = scripted(ValueError(), ValueError(), ValueError(), "ok")
        wrapped = retry_with_backoff(max_retries=3, initial_delay=4.0, backoff_factor=4.0, max_delay=10.0)(fetch)

        with patch("curriculum_engine.utils.retry.time.sleep") as sleep:
            wrapped()

        assert [c.args[0] for c in sleep.call_args_list] == [4.0, 10.0, 10.0]

    def test_exhausted_reraises_last_error(self):
        fetch = scripted(ConnectionError("down"))
        wrapped = retry_with_backoff(max_retries=2, initial_delay=0.1)(fetch)

        with patch("curriculum_engine.utils.retry.time.sleep"):
            with pytest.raises(ConnectionError, match="down"):
                wrapped()

        assert fetch.calls == 3

    def test_non_retryable_raises_immediately(self):
        fetch = scripted(KeyError("k"))
        wrapped = retry_with_backoff(retryable_exceptions=(ConnectionError,))(fetch)

        with pytest.raises(KeyError):
            wrapped()
        assert fetch.calls == 1

    def test_preserves_metadata(self):
        @retry_with_backoff()
        def load_curriculum():
            """Load one curriculum."""

        assert load_curriculum.__name__ == "load_curriculum"
        assert load_curriculum.__doc__ == "Load one curriculum."

    @pytest.mark.asyncio
    async def test_async_function(self):
        calls = 0

        @retry_with_backoff(max_retries=2, initial_delay=0.5)
        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 2:
                raise TimeoutError("slow")
            return calls

        with patch("curriculum_engine.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await flaky() == 2

        sleep.assert_awaited_once_with(0.5)
