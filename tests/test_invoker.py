"""
Tests for single-provider structured invocation.
"""

import asyncio
import json

import pytest
from pydantic import BaseModel

from curriculum_engine.llm.config import ModelConfig, RateLimit
from curriculum_engine.llm.errors import (
    ProviderCallError,
    ProviderUnavailableError,
    RateLimitedError,
    SchemaValidationError,
    TransientOverloadError,
)
from curriculum_engine.llm.invoker import GenerationOptions, cache_key, parse_json_response
from curriculum_engine.models.enums import TaskName
from curriculum_engine.models.schemas import ParsedJob
from tests.fakes import JOB, FakeAPIError, FakeProvider, always, build_services, failing, make_llm_config


class Verdict(BaseModel):
    label: str
    score: int


class TestParseJsonResponse:
    def test_plain(self):
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}
        assert parse_json_response('```\n{"a": 1}\n```') == {"a": 1}


class TestGenerationOptions:
    def test_with_temperature_keeps_other_fields(self):
        options = GenerationOptions(system_prompt="s", use_cache=False)

        warmer = options.with_temperature(0.7)

        assert warmer.temperature == 0.7
        assert warmer.system_prompt == "s" and warmer.use_cache is False
        assert options.temperature is None


class TestStructuredInvoker:
    @pytest.mark.asyncio
    async def test_valid_response_is_parsed_and_cached(self, llm_config):
        gemini = FakeProvider("gemini", always(json.dumps(JOB)))
        services = build_services([gemini], llm_config)

        job = await services.invoker.invoke("gemini", ParsedJob, TaskName.JOB_PARSING, "parse this")

        assert isinstance(job, ParsedJob)
        assert job.company_name == "Acme"
        cached = services.cache.get(cache_key(TaskName.JOB_PARSING, "parse this", GenerationOptions(), ParsedJob))
        assert cached is not None and cached.provider == "gemini"
        [usage] = services.usage.snapshot()
        assert usage.total_requests == 1 and usage.errors == 0
        assert usage.total_cost_cents == pytest.approx(0.12)

    @pytest.mark.asyncio
    async def test_request_carries_schema_and_task_settings(self, llm_config):
        gemini = FakeProvider("gemini", always('{"label": "ok", "score": 3}'))
        services = build_services([gemini], llm_config)

        await services.invoker.invoke(
            "gemini", Verdict, "quality_evaluation", "judge", GenerationOptions(system_prompt="Be strict.")
        )

        [request] = gemini.calls
        assert request.json_mode is True
        assert request.system_prompt.startswith("Be strict.")
        assert '"score"' in request.system_prompt
        assert request.temperature == 0.5
        assert request.max_tokens == 1000

    @pytest.mark.asyncio
    async def test_temperature_override_is_clamped(self, llm_config):
        gemini = FakeProvider("gemini", always("free text"))
        services = build_services([gemini], llm_config)

        result = await services.invoker.generate(
            "gemini", TaskName.ROUND_GENERATION, "write", GenerationOptions(temperature=5.0)
        )

        assert result.content == "free text"
        assert result.cached is False
        assert gemini.calls[0].temperature == 2.0
        assert gemini.calls[0].json_mode is False

    @pytest.mark.asyncio
    async def test_schema_mismatch(self, llm_config):
        gemini = FakeProvider("gemini", always('{"label": "ok"}'))
        services = build_services([gemini], llm_config)

        with pytest.raises(SchemaValidationError) as exc_info:
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")

        assert exc_info.value.raw_content == '{"label": "ok"}'
        assert exc_info.value.provider == "gemini"
        assert len(services.cache) == 0
        assert services.usage.snapshot()[0].errors == 1

    @pytest.mark.asyncio
    async def test_non_json_response(self, llm_config):
        gemini = FakeProvider("gemini", always("Sure! Here is your answer."))
        services = build_services([gemini], llm_config)

        with pytest.raises(SchemaValidationError, match="not valid JSON"):
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")

    @pytest.mark.asyncio
    async def test_overload_is_classified_transient(self, llm_config):
        gemini = FakeProvider("gemini", failing(FakeAPIError("overloaded", status_code=529)))
        services = build_services([gemini], llm_config)

        with pytest.raises(TransientOverloadError) as exc_info:
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")

        assert exc_info.value.status_code == 529
        assert isinstance(exc_info.value.__cause__, FakeAPIError)

    @pytest.mark.asyncio
    async def test_other_failures_are_call_errors(self, llm_config):
        gemini = FakeProvider("gemini", failing(FakeAPIError("invalid key", status_code=401)))
        services = build_services([gemini], llm_config)

        with pytest.raises(ProviderCallError):
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")
        assert services.usage.snapshot()[0].errors == 1

    @pytest.mark.asyncio
    async def test_unavailable_provider_is_never_called(self, llm_config):
        gemini = FakeProvider("gemini", always("{}"))
        services = build_services([gemini], llm_config)

        with pytest.raises(ProviderUnavailableError):
            await services.invoker.invoke("openai", Verdict, "job_parsing", "p")
        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_rate_limited_before_network_call(self, clock):
        config = make_llm_config(rate_limits={"gemini": RateLimit(requests_per_minute=1)})
        gemini = FakeProvider("gemini", always('{"label": "ok", "score": 1}'))
        services = build_services([gemini], config, clock=clock)

        await services.invoker.invoke("gemini", Verdict, "job_parsing", "first")
        with pytest.raises(RateLimitedError):
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "second")

        assert gemini.prompts() == ["first"]

    @pytest.mark.asyncio
    async def test_caching_disabled_per_call(self, llm_config):
        gemini = FakeProvider("gemini", always('{"label": "ok", "score": 1}'))
        services = build_services([gemini], llm_config)

        await services.invoker.invoke("gemini", Verdict, "job_parsing", "p", GenerationOptions(use_cache=False))

        assert len(services.cache) == 0

    @pytest.mark.asyncio
    async def test_cost_tracking_disabled(self):
        config = make_llm_config(cost_tracking=False)
        gemini = FakeProvider("gemini", always("text"))
        services = build_services([gemini], config)

        result = await services.invoker.generate("gemini", "job_parsing", "p")

        assert result.cost_cents == 0.0
        assert result.tokens_used == 120

    @pytest.mark.asyncio
    async def test_rejected_response_still_counts_spend(self, llm_config):
        gemini = FakeProvider("gemini", always('{"label": "ok"}'))
        services = build_services([gemini], llm_config)

        with pytest.raises(SchemaValidationError):
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")

        [usage] = services.usage.snapshot()
        assert usage.errors == 1
        assert usage.total_tokens == 120
        assert usage.total_cost_cents == pytest.approx(0.12)
        assert services.usage.budget_status()["daily_spent_cents"] == pytest.approx(0.12)


class TestCallTimeout:
    @staticmethod
    def config_with_timeout(seconds):
        models = {
            task: ModelConfig(
                provider="gemini", model="gemini-2.5-flash", temperature=0.5, max_tokens=1000, timeout_seconds=seconds
            )
            for task in TaskName
        }
        return make_llm_config(models=models)

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        async def stalled(request):
            await asyncio.sleep(5)
            return "{}"

        services = build_services([FakeProvider("gemini", stalled)], self.config_with_timeout(0.05))

        with pytest.raises(ProviderCallError, match="did not respond within 0.05s") as exc_info:
            await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")

        assert exc_info.value.provider == "gemini"
        assert exc_info.value.transient is False
        assert services.usage.snapshot()[0].errors == 1

    @pytest.mark.asyncio
    async def test_fast_provider_within_timeout(self):
        gemini = FakeProvider("gemini", always('{"label": "ok", "score": 2}'))
        services = build_services([gemini], self.config_with_timeout(5))

        verdict = await services.invoker.invoke("gemini", Verdict, "job_parsing", "p")

        assert verdict.score == 2

    @pytest.mark.asyncio
    async def test_timed_out_provider_falls_back(self, sleep):
        async def stalled(request):
            await asyncio.sleep(5)
            return "{}"

        openai = FakeProvider("openai", always('{"label": "ok", "score": 9}'))
        services = build_services(
            [FakeProvider("gemini", stalled), openai], self.config_with_timeout(0.05), sleep
        )

        verdict = await services.fallback.invoke(TaskName.QUALITY_EVALUATION, Verdict, "p")

        assert verdict.score == 9
        sleep.assert_awaited_once_with(0.25)
