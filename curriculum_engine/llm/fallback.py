"""Ordered provider fallback for a single structured or free-text request."""

import asyncio
from typing import Awaitable, Callable, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel

from curriculum_engine.llm.cache import ResponseCache
from curriculum_engine.llm.config import LLMConfig, get_optimal_provider
from curriculum_engine.llm.errors import (
    AllProvidersExhaustedError,
    LLMError,
    ProviderUnavailableError,
    RateLimitedError,
    SchemaValidationError,
)
from curriculum_engine.llm.invoker import (
    DEFAULT_OPTIONS,
    GenerationOptions,
    StructuredInvoker,
    cache_key,
    validate_structured,
)
from curriculum_engine.llm.registry import ProviderRegistry
from curriculum_engine.models.enums import TaskName
from curriculum_engine.models.schemas import GenerationResult

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


def skips_backoff(error: LLMError) -> bool:
    """Errors after which the next provider is tried without waiting.

    Overload is signalled by the provider; unavailability and local rate
    limiting happen before any network call.
    """
    return error.transient or isinstance(error, (ProviderUnavailableError, RateLimitedError))


def compute_provider_order(task: TaskName | str, llm_config: LLMConfig, registry: ProviderRegistry) -> list[str]:
    """Optimal provider first, then the primary/fallback chain; available and unique."""
    optimal = get_optimal_provider(task, llm_config, registry.is_available)
    candidates = [optimal]
    if llm_config.enable_fallback:
        candidates += [llm_config.primary_provider, *llm_config.fallback_providers]
    order: list[str] = []
    for provider in candidates:
        if provider not in order and registry.is_available(provider):
            order.append(provider)
    return order


class FallbackOrchestrator:
    def __init__(
        self,
        invoker: StructuredInvoker,
        registry: ProviderRegistry,
        llm_config: LLMConfig,
        cache: ResponseCache,
        backoff_seconds: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.invoker = invoker
        self.registry = registry
        self.llm_config = llm_config
        self.cache = cache
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else llm_config.retry_delay_ms / 1000
        )
        self._sleep = sleep

    def provider_order(self, task: TaskName | str) -> list[str]:
        return compute_provider_order(task, self.llm_config, self.registry)

    def _cache_enabled(self, options: GenerationOptions) -> bool:
        return self.llm_config.caching.enabled and options.use_cache

    async def _walk(
        self,
        task: TaskName,
        attempt: Callable[[str], Awaitable[R]],
        force_provider: Optional[str],
    ) -> R:
        if force_provider:
            # A forced provider never falls back; its error propagates unchanged
            logger.info("llm_forced_provider", task=task.value, provider=force_provider)
            return await attempt(force_provider)

        order = self.provider_order(task)
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
            try:
                result = await attempt(provider)
            except LLMError as e:
                last_error = e
                has_next = index < len(order) - 1
                logger.warning(
                    "llm_provider_failed",
                    task=task.value,
                    provider=provider,
                    error_type=type(e).__name__,
                    error=str(e),
                    will_fallback=has_next,
                )
                if has_next and not skips_backoff(e):
                    await self._sleep(self.backoff_seconds)
                continue
            if index > 0:
                logger.info("llm_fallback_succeeded", task=task.value, provider=provider, attempted=attempted)
            return result

        logger.error("llm_all_providers_failed", task=task.value, attempted=attempted)
        raise AllProvidersExhaustedError(task.value, attempted, last_error) from last_error

    async def invoke(
        self,
        task: TaskName | str,
        schema: Type[T],
        prompt: str,
        options: GenerationOptions = DEFAULT_OPTIONS,
        force_provider: Optional[str] = None,
    ) -> T:
        task = TaskName(task)
        if self._cache_enabled(options):
            hit = self.cache.get(cache_key(task, prompt, options, schema))
            if hit is not None:
                try:
                    parsed = validate_structured(schema, hit.content, hit.provider, task.value)
                except SchemaValidationError:
                    logger.warning("llm_cache_entry_invalid", task=task.value, provider=hit.provider)
                else:
                    logger.debug("llm_cache_hit", task=task.value, provider=hit.provider)
                    return parsed

        return await self._walk(
            task,
            lambda provider: self.invoker.invoke(provider, schema, task, prompt, options),
            force_provider,
        )

    async def generate(
        self,
        task: TaskName | str,
        prompt: str,
        options: GenerationOptions = DEFAULT_OPTIONS,
        force_provider: Optional[str] = None,
    ) -> GenerationResult:
        task = TaskName(task)
        if self._cache_enabled(options):
            hit = self.cache.get(cache_key(task, prompt, options))
            if hit is not None:
                logger.debug("llm_cache_hit", task=task.value, provider=hit.provider)
                return hit

        return await self._walk(
            task,
            lambda provider: self.invoker.generate(provider, task, prompt, options),
            force_provider,
        )
