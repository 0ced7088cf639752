"""
Tests for provider availability and handle caching.
"""

import pytest

from curriculum_engine.llm.errors import ProviderUnavailableError
from curriculum_engine.llm.registry import ProviderRegistry, build_factories
from curriculum_engine.models.enums import TaskName
from tests.fakes import FakeProvider, always


class TestProviderRegistry:
    @pytest.fixture
    def gemini(self):
        return FakeProvider("gemini", always("{}"))

    @pytest.fixture
    def registry(self, llm_config, gemini):
        return ProviderRegistry(llm_config, {"gemini": gemini.factory})

    def test_availability(self, registry):
        assert registry.is_available("gemini")
        assert not registry.is_available("openai")
        assert registry.available_providers() == ["gemini"]

    def test_availability_report_lists_every_known_provider(self, registry):
        report = registry.availability_report()
        assert report == {
            "gemini": True,
            "gemini-pro": False,
            "openai": False,
            "anthropic": False,
            "bedrock": False,
        }

    def test_unavailable_provider_raises(self, registry):
        with pytest.raises(ProviderUnavailableError) as exc_info:
            registry.get_handle("openai", TaskName.JOB_PARSING)
        assert exc_info.value.provider == "openai"
        assert exc_info.value.task == "job_parsing"

    def test_factory_failure_is_unavailability(self, llm_config):
        broken = FakeProvider("gemini", always("{}"), factory_error=ValueError("client construction failed"))
        registry = ProviderRegistry(llm_config, {"gemini": broken.factory})

        with pytest.raises(ProviderUnavailableError, match="client construction failed") as exc_info:
            registry.get_handle("gemini", TaskName.QUALITY_EVALUATION)

        assert exc_info.value.provider == "gemini"
        assert exc_info.value.task == "quality_evaluation"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_handles_cached_per_task(self, registry, gemini):
        first = registry.get_handle("gemini", TaskName.JOB_PARSING)
        again = registry.get_handle("gemini", "job_parsing")
        other = registry.get_handle("gemini", TaskName.ROUND_GENERATION)

        assert first is again
        assert first is not other
        assert len(gemini.models) == 2

    def test_model_for_configured_provider(self, registry):
        assert registry.model_for("gemini", TaskName.JOB_PARSING) == "gemini-2.5-flash"

    def test_model_for_fallback_provider_uses_defaults(self, registry):
        assert registry.model_for("openai", TaskName.JOB_PARSING) == "gpt-4.1-mini"
        assert registry.model_for("gemini-pro", TaskName.JOB_PARSING) == "gemini-2.5-pro"


class TestBuildFactories:
    def test_no_credentials(self, settings):
        assert build_factories(settings) == {}

    def test_google_key_enables_both_gemini_providers(self, settings):
        factories = build_factories(settings.model_copy(update={"GOOGLE_API_KEY": "key"}))
        assert set(factories) == {"gemini", "gemini-pro"}

    def test_aws_needs_both_keys(self, settings):
        partial = settings.model_copy(update={"AWS_ACCESS_KEY_ID": "id"})
        assert "bedrock" not in build_factories(partial)

        full = partial.model_copy(update={"AWS_SECRET_ACCESS_KEY": "secret"})
        assert "bedrock" in build_factories(full)

    def test_each_provider_key(self, settings):
        factories = build_factories(settings.model_copy(update={
            "OPENAI_API_KEY": "sk",
            "ANTHROPIC_API_KEY": "ak",
        }))
        assert set(factories) == {"openai", "anthropic"}
