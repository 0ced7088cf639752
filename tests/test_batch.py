"""
Tests for concurrent batch invocation with whole-batch fallback.
"""

import asyncio
import json
import re

import pytest
from pydantic import BaseModel

from curriculum_engine.llm.batch import BatchFailure
from curriculum_engine.llm.errors import (
    AllProvidersExhaustedError,
    ProviderCallError,
    SchemaValidationError,
    TransientOverloadError,
)
from curriculum_engine.llm.invoker import GenerationOptions
from curriculum_engine.models.enums import TaskName
from tests.fakes import FakeAPIError, FakeProvider, always, build_services

ITEM = re.compile(r"item (\d+)")


class Echo(BaseModel):
    index: int
    provider: str


def echo(provider: str, fail_items=(), error=None):
    """Answer each prompt with its item index, failing the listed items."""

    def respond(request):
        index = int(ITEM.search(request.prompt).group(1))
        if index in fail_items:
            return error or FakeAPIError("bad request", status_code=400)
        return json.dumps({"index": index, "provider": provider})

    return respond


PROMPTS = [f"item {i}" for i in range(5)]


class TestBatchOrchestrator:
    @pytest.mark.asyncio
    async def test_one_failed_item_retries_whole_batch_on_next_provider(self, llm_config, sleep):
        gemini = FakeProvider("gemini", echo("gemini", fail_items={2}))
        openai = FakeProvider("openai", echo("openai"))
        services = build_services([gemini, openai], llm_config, sleep)

        results = await services.batch.invoke_batch(TaskName.PERSONA_GENERATION, Echo, PROMPTS)

        assert [r.index for r in results] == [0, 1, 2, 3, 4]
        assert {r.provider for r in results} == {"openai"}
        assert len(gemini.calls) == 5
        assert len(openai.calls) == 5
        sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_unbuildable_handle_moves_batch_to_next_provider(self, llm_config, sleep):
        gemini = FakeProvider("gemini", echo("gemini"), factory_error=RuntimeError("no client"))
        openai = FakeProvider("openai", echo("openai"))
        services = build_services([gemini, openai], llm_config, sleep)

        results = await services.batch.invoke_batch(TaskName.PERSONA_GENERATION, Echo, PROMPTS)

        assert [r.index for r in results] == [0, 1, 2, 3, 4]
        assert {r.provider for r in results} == {"openai"}
        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_order_preserved_when_items_finish_out_of_order(self, llm_config):
        async def slow_first(request):
            index = int(ITEM.search(request.prompt).group(1))
            await asyncio.sleep(0.01 * (5 - index))
            return json.dumps({"index": index, "provider": "gemini"})

        services = build_services([FakeProvider("gemini", slow_first)], llm_config)

        results = await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS)

        assert [r.index for r in results] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_empty_batch(self, llm_config):
        gemini = FakeProvider("gemini", always("{}"))
        services = build_services([gemini], llm_config)

        assert await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, []) == []
        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_transient_batch_failure_skips_backoff(self, llm_config, sleep):
        overloaded = FakeAPIError("overloaded", status_code=503)
        gemini = FakeProvider("gemini", echo("gemini", fail_items={0, 3}, error=overloaded))
        openai = FakeProvider("openai", echo("openai"))
        services = build_services([gemini, openai], llm_config, sleep)

        results = await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS)

        assert {r.provider for r in results} == {"openai"}
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted(self, llm_config, sleep):
        gemini = FakeProvider("gemini", echo("gemini", fail_items={1}))
        openai = FakeProvider("openai", echo("openai", fail_items={4}))
        services = build_services([gemini, openai], llm_config, sleep)

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS)

        error = exc_info.value
        assert error.attempted == ["gemini", "openai"]
        assert isinstance(error.last_error, BatchFailure)
        assert sorted(error.last_error.failures) == [4]
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_forced_provider_raises_first_item_error(self, llm_config):
        gemini = FakeProvider("gemini", echo("gemini"))
        openai = FakeProvider("openai", echo("openai", fail_items={1, 3}))
        services = build_services([gemini, openai], llm_config)

        with pytest.raises(ProviderCallError):
            await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS, force_provider="openai")

        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_fully_cached_batch_makes_no_calls(self, llm_config):
        gemini = FakeProvider("gemini", echo("gemini"))
        services = build_services([gemini], llm_config)

        await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS)
        again = await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS)

        assert [r.index for r in again] == [0, 1, 2, 3, 4]
        assert len(gemini.calls) == 5

    @pytest.mark.asyncio
    async def test_partially_cached_batch_runs_in_full(self, llm_config):
        gemini = FakeProvider("gemini", echo("gemini"))
        services = build_services([gemini], llm_config)

        await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS[:2])
        await services.batch.invoke_batch(TaskName.ROUND_GENERATION, Echo, PROMPTS)

        assert len(gemini.calls) == 7

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, llm_config):
        in_flight = 0
        peak = 0

        async def tracked(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            index = int(ITEM.search(request.prompt).group(1))
            return json.dumps({"index": index, "provider": "gemini"})

        services = build_services([FakeProvider("gemini", tracked)], llm_config)
        services.batch.max_concurrency = 2

        prompts = [f"item {i}" for i in range(6)]
        results = await services.batch.invoke_batch(
            TaskName.ROUND_GENERATION, Echo, prompts, GenerationOptions(use_cache=False)
        )

        assert len(results) == 6
        assert peak == 2


class TestBatchFailure:
    def test_transient_only_when_every_failure_skips_backoff(self):
        transient = BatchFailure("gemini", "round_generation", {
            0: TransientOverloadError("o"),
            2: TransientOverloadError("o"),
        })
        mixed = BatchFailure("gemini", "round_generation", {
            0: TransientOverloadError("o"),
            2: SchemaValidationError("bad"),
        })

        assert transient.transient is True
        assert mixed.transient is False
        assert isinstance(mixed.first_error, TransientOverloadError)
        assert "first at index 0" in str(mixed)
