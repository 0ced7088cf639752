"""
Shared fixtures for the curriculum engine test suite.
"""

from unittest.mock import AsyncMock

import pytest

from curriculum_engine.config import Settings
from tests.fakes import make_llm_config


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    """Recorded replacement for asyncio.sleep in the orchestrators."""
    return AsyncMock()


@pytest.fixture
def llm_config():
    return make_llm_config()


@pytest.fixture
def settings():
    """Settings isolated from any local .env file or provider credentials."""
    return Settings(
        _env_file=None,
        APP_ENV="test",
        GOOGLE_API_KEY=None,
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        AWS_ACCESS_KEY_ID=None,
        AWS_SECRET_ACCESS_KEY=None,
        PRIMARY_LLM_PROVIDER=None,
        FALLBACK_PROVIDERS=None,
        LLM_CONFIG_PATH=None,
        ENABLE_COST_TRACKING=None,
        LLM_BUDGET_DAILY_CENTS=None,
        LLM_BUDGET_MONTHLY_CENTS=None,
        PIPELINE_TIMEOUT_SECONDS=None,
        STORAGE_BACKEND="memory",
    )
