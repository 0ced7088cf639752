"""Concurrent batch invocation with whole-batch provider fallback."""

import asyncio
from typing import Optional, Sequence, Type, TypeVar

import structlog
from pydantic import BaseModel

from curriculum_engine.llm.errors import (
    AllProvidersExhaustedError,
    LLMError,
    ProviderUnavailableError,
    SchemaValidationError,
)
from curriculum_engine.llm.fallback import FallbackOrchestrator, Sleep, skips_backoff
from curriculum_engine.llm.invoker import DEFAULT_OPTIONS, GenerationOptions, StructuredInvoker, cache_key, validate_structured
from curriculum_engine.models.enums import TaskName

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_MAX_CONCURRENCY = 5


class BatchFailure(LLMError):
    """Every item of a batch was attempted on one provider and at least one failed."""

    def __init__(self, provider: str, task: str, failures: dict[int, LLMError]):
        self.failures = failures
        first_index = min(failures)
        first = failures[first_index]
        super().__init__(
            f"{len(failures)} of the batch items failed on {provider} "
            f"(first at index {first_index}: {first})",
            provider=provider,
            task=task,
        )
        self.transient = all(skips_backoff(e) for e in failures.values())

    @property
    def first_error(self) -> LLMError:
        return self.failures[min(self.failures)]


class BatchOrchestrator:
    """Fans N prompts for one task out to a single provider at a time.

    Output order always matches input order. If any item fails, the entire
    batch is retried on the next provider; results from different providers
    are never mixed.
    """

    def __init__(
        self,
        invoker: StructuredInvoker,
        fallback: FallbackOrchestrator,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        backoff_seconds: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.invoker = invoker
        self.fallback = fallback
        self.max_concurrency = max_concurrency
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else fallback.backoff_seconds
        self._sleep = sleep

    def _cached_batch(
        self,
        task: TaskName,
        schema: Type[T],
        prompts: Sequence[str],
        options: GenerationOptions,
    ) -> Optional[list[T]]:
        if not (self.invoker.llm_config.caching.enabled and options.use_cache):
            return None
        results: list[T] = []
        for prompt in prompts:
            hit = self.fallback.cache.get(cache_key(task, prompt, options, schema))
            if hit is None:
                return None
            try:
                results.append(validate_structured(schema, hit.content, hit.provider, task.value))
            except SchemaValidationError:
                return None
        return results

    async def _run_on_provider(
        self,
        provider: str,
        task: TaskName,
        schema: Type[T],
        prompts: Sequence[str],
        options: GenerationOptions,
    ) -> list[T]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(prompt: str) -> T:
            async with semaphore:
                return await self.invoker.invoke(provider, schema, task, prompt, options)

        outcomes = await asyncio.gather(*(run_one(p) for p in prompts), return_exceptions=True)

        failures: dict[int, LLMError] = {}
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, LLMError):
                failures[index] = outcome
            elif isinstance(outcome, BaseException):
                raise outcome
        if failures:
            raise BatchFailure(provider, task.value, failures)
        return list(outcomes)

    async def invoke_batch(
        self,
        task: TaskName | str,
        schema: Type[T],
        prompts: Sequence[str],
        options: GenerationOptions = DEFAULT_OPTIONS,
        force_provider: Optional[str] = None,
    ) -> list[T]:
        task = TaskName(task)
        if not prompts:
            return []

        cached = self._cached_batch(task, schema, prompts, options)
        if cached is not None:
            logger.debug("llm_batch_cache_hit", task=task.value, size=len(prompts))
            return cached

        if force_provider:
            logger.info("llm_batch_forced_provider", task=task.value, provider=force_provider, size=len(prompts))
            try:
                return await self._run_on_provider(force_provider, task, schema, prompts, options)
            except BatchFailure as e:
                raise e.first_error from e

        order = self.fallback.provider_order(task)
        if not order:
            logger.error("llm_no_providers", task=task.value)
            raise AllProvidersExhaustedError(
                task.value,
                [],
                ProviderUnavailableError(
                    f"No configured provider is available for task '{task.value}'", task=task.value
                ),
            )

        attempted: list[str] = []
        last_error: Optional[LLMError] = None
        for index, provider in enumerate(order):
            attempted.append(provider)
            logger.info("llm_batch_started", task=task.value, provider=provider, size=len(prompts))
            try:
                results = await self._run_on_provider(provider, task, schema, prompts, options)
            except BatchFailure as e:
                last_error = e
                has_next = index < len(order) - 1
                logger.warning(
                    "llm_batch_failed",
                    task=task.value,
                    provider=provider,
                    failed_items=sorted(e.failures),
                    error=str(e.first_error),
                    will_fallback=has_next,
                )
                if has_next and not e.transient:
                    await self._sleep(self.backoff_seconds)
                continue
            logger.info("llm_batch_succeeded", task=task.value, provider=provider, size=len(results))
            return results

        logger.error("llm_batch_exhausted", task=task.value, attempted=attempted)
        raise AllProvidersExhaustedError(task.value, attempted, last_error) from last_error
