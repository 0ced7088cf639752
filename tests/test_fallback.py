"""
Tests for ordered provider fallback on a single request.
"""

import json

import pytest

from curriculum_engine.llm.errors import (
    AllProvidersExhaustedError,
    ProviderCallError,
    ProviderUnavailableError,
    RateLimitedError,
    SchemaValidationError,
    TransientOverloadError,
)
from curriculum_engine.llm.fallback import compute_provider_order, skips_backoff
from curriculum_engine.llm.invoker import GenerationOptions
from curriculum_engine.models.enums import TaskName
from curriculum_engine.models.schemas import ParsedJob
from tests.fakes import JOB, FakeAPIError, FakeProvider, always, build_services, failing, make_llm_config

VALID_JOB = json.dumps(JOB)
OVERLOADED = FakeAPIError("overloaded", status_code=529)


class TestProviderOrder:
    def test_optimal_then_chain_deduplicated(self, llm_config):
        providers = [FakeProvider(n, always("")) for n in ("gemini", "openai", "anthropic")]
        services = build_services(providers, llm_config)

        assert services.fallback.provider_order(TaskName.JOB_PARSING) == ["gemini", "openai", "anthropic"]

    def test_unavailable_providers_are_skipped(self, llm_config):
        services = build_services([FakeProvider("anthropic", always(""))], llm_config)

        assert services.fallback.provider_order(TaskName.JOB_PARSING) == ["anthropic"]

    def test_fallback_disabled(self):
        config = make_llm_config(enable_fallback=False)
        providers = [FakeProvider(n, always("")) for n in ("gemini", "openai")]
        services = build_services(providers, config)

        assert compute_provider_order(TaskName.JOB_PARSING, config, services.registry) == ["gemini"]

    def test_skips_backoff(self):
        assert skips_backoff(TransientOverloadError("x"))
        assert skips_backoff(ProviderUnavailableError("x"))
        assert skips_backoff(RateLimitedError("x"))
        assert not skips_backoff(ProviderCallError("x"))
        assert not skips_backoff(SchemaValidationError("x"))


class TestFallbackOrchestrator:
    @pytest.mark.asyncio
    async def test_overloaded_primary_falls_through_without_backoff(self, llm_config, sleep):
        gemini = FakeProvider("gemini", failing(OVERLOADED))
        openai = FakeProvider("openai", always(VALID_JOB))
        anthropic = FakeProvider("anthropic", always(VALID_JOB))
        services = build_services([gemini, openai, anthropic], llm_config, sleep)

        job = await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "Senior PM at Acme")

        assert job.title == "Senior Product Manager"
        assert len(gemini.calls) == 1
        assert len(openai.calls) == 1
        assert anthropic.calls == []
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unbuildable_handle_falls_back(self, llm_config, sleep):
        gemini = FakeProvider("gemini", always(VALID_JOB), factory_error=ValueError("client construction failed"))
        openai = FakeProvider("openai", always(VALID_JOB))
        services = build_services([gemini, openai], llm_config, sleep)

        job = await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "Senior PM at Acme")

        assert job.title == "Senior Product Manager"
        assert gemini.calls == []
        assert len(openai.calls) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_providers_exhausted(self, llm_config, sleep):
        gemini = FakeProvider("gemini", failing(OVERLOADED))
        openai = FakeProvider("openai", always("not json"))
        anthropic = FakeProvider("anthropic", failing(FakeAPIError("bad request", status_code=400)))
        services = build_services([gemini, openai, anthropic], llm_config, sleep)

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "Senior PM at Acme")

        error = exc_info.value
        assert error.attempted == ["gemini", "openai", "anthropic"]
        assert isinstance(error.last_error, ProviderCallError)
        assert error.last_error.provider == "anthropic"
        assert str(error).startswith("All providers failed for task 'job_parsing'")
        # backoff only after openai's schema failure, never after the last provider
        sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_schema_failure_backs_off_then_recovers(self, llm_config, sleep):
        gemini = FakeProvider("gemini", always('{"title": "PM"}'))
        openai = FakeProvider("openai", always(VALID_JOB))
        services = build_services([gemini, openai], llm_config, sleep)

        job = await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p")

        assert job.company_name == "Acme"
        sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_forced_provider_never_falls_back(self, llm_config, sleep):
        gemini = FakeProvider("gemini", always(VALID_JOB))
        openai = FakeProvider("openai", failing(OVERLOADED))
        services = build_services([gemini, openai], llm_config, sleep)

        with pytest.raises(TransientOverloadError):
            await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p", force_provider="openai")

        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_no_available_providers(self, llm_config):
        services = build_services([], llm_config)

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p")

        assert exc_info.value.attempted == []
        assert isinstance(exc_info.value.last_error, ProviderUnavailableError)
        assert str(exc_info.value).startswith("No available providers for task 'job_parsing'")

    @pytest.mark.asyncio
    async def test_cache_hit_skips_providers(self, llm_config):
        gemini = FakeProvider("gemini", always(VALID_JOB))
        services = build_services([gemini], llm_config)

        first = await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p")
        second = await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p")

        assert first == second
        assert len(gemini.calls) == 1

    @pytest.mark.asyncio
    async def test_cache_bypass(self, llm_config):
        gemini = FakeProvider("gemini", always(VALID_JOB))
        services = build_services([gemini], llm_config)
        options = GenerationOptions(use_cache=False)

        await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p", options)
        await services.fallback.invoke(TaskName.JOB_PARSING, ParsedJob, "p", options)

        assert len(gemini.calls) == 2

    @pytest.mark.asyncio
    async def test_generate_falls_back(self, llm_config, sleep):
        gemini = FakeProvider("gemini", failing(FakeAPIError("boom", status_code=500)))
        openai = FakeProvider("openai", always("plain answer"))
        services = build_services([gemini, openai], llm_config, sleep)

        result = await services.fallback.generate(TaskName.COMPANY_RESEARCH, "tell me")

        assert result.provider == "openai"
        assert result.content == "plain answer"
        sleep.assert_awaited_once()
