"""Process-wide assembly of the invocation layer."""

from dataclasses import dataclass
from typing import Mapping, Optional

from curriculum_engine.config import Settings
from curriculum_engine.llm.batch import BatchOrchestrator
from curriculum_engine.llm.cache import ResponseCache
from curriculum_engine.llm.config import LLMConfig, load_llm_config
from curriculum_engine.llm.fallback import FallbackOrchestrator
from curriculum_engine.llm.invoker import StructuredInvoker
from curriculum_engine.llm.rate_limiter import RateLimiter
from curriculum_engine.llm.registry import HandleFactory, ProviderRegistry
from curriculum_engine.llm.usage import UsageTracker


@dataclass
class LLMServices:
    """One instance per process, shared by reference across pipeline runs."""
    config: LLMConfig
    registry: ProviderRegistry
    rate_limiter: RateLimiter
    cache: ResponseCache
    usage: UsageTracker
    invoker: StructuredInvoker
    fallback: FallbackOrchestrator
    batch: BatchOrchestrator


def create_llm_services(
    settings: Settings,
    llm_config: Optional[LLMConfig] = None,
    factories: Optional[Mapping[str, HandleFactory]] = None,
) -> LLMServices:
    config = llm_config or load_llm_config(settings)
    registry = (
        ProviderRegistry(config, factories)
        if factories is not None
        else ProviderRegistry.from_settings(settings, config)
    )
    rate_limiter = RateLimiter({p: rl.requests_per_minute for p, rl in config.rate_limits.items()})
    cache = ResponseCache(ttl_seconds=config.caching.ttl_minutes * 60, max_size=config.caching.max_size)
    usage = UsageTracker(budget=config.budget_limits, enabled=config.cost_tracking)
    invoker = StructuredInvoker(registry, rate_limiter, cache, config, usage)
    fallback = FallbackOrchestrator(invoker, registry, config, cache)
    batch = BatchOrchestrator(invoker, fallback)
    return LLMServices(
        config=config,
        registry=registry,
        rate_limiter=rate_limiter,
        cache=cache,
        usage=usage,
        invoker=invoker,
        fallback=fallback,
        batch=batch,
    )
