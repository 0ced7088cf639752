"""Resilient multi-provider LLM invocation layer."""

from curriculum_engine.llm.batch import BatchOrchestrator
from curriculum_engine.llm.cache import ResponseCache
from curriculum_engine.llm.config import ConfigurationError, LLMConfig, load_llm_config
from curriculum_engine.llm.errors import (
    AllProvidersExhaustedError,
    LLMError,
    ProviderCallError,
    ProviderUnavailableError,
    RateLimitedError,
    SchemaValidationError,
    TransientOverloadError,
)
from curriculum_engine.llm.fallback import FallbackOrchestrator
from curriculum_engine.llm.invoker import GenerationOptions, StructuredInvoker
from curriculum_engine.llm.rate_limiter import RateLimiter
from curriculum_engine.llm.registry import ProviderRegistry
from curriculum_engine.llm.service import LLMServices, create_llm_services

__all__ = [
    "AllProvidersExhaustedError",
    "BatchOrchestrator",
    "ConfigurationError",
    "FallbackOrchestrator",
    "GenerationOptions",
    "LLMConfig",
    "LLMError",
    "LLMServices",
    "ProviderCallError",
    "ProviderRegistry",
    "ProviderUnavailableError",
    "RateLimitedError",
    "RateLimiter",
    "ResponseCache",
    "SchemaValidationError",
    "StructuredInvoker",
    "TransientOverloadError",
    "create_llm_services",
    "load_llm_config",
]
