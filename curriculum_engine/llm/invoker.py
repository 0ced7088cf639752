"""Single-provider invocation with schema-validated structured output."""

import asyncio
import json
import time
from dataclasses import dataclass, replace
from typing import Any, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from curriculum_engine.llm.cache import ResponseCache
from curriculum_engine.llm.config import LLMConfig, calculate_estimated_cost
from curriculum_engine.llm.errors import (
    ProviderCallError,
    ProviderUnavailableError,
    RateLimitedError,
    SchemaValidationError,
    classify_provider_error,
)
from curriculum_engine.llm.rate_limiter import RateLimiter
from curriculum_engine.llm.registry import ProviderRegistry
from curriculum_engine.llm.usage import UsageTracker
from curriculum_engine.models.enums import TaskName
from curriculum_engine.models.schemas import GenerationResult
from curriculum_engine.providers.base import Completion, CompletionRequest, ModelHandle

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call overrides on top of the task configuration."""
    system_prompt: str = ""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    use_cache: bool = True

    def with_temperature(self, temperature: float) -> "GenerationOptions":
        return replace(self, temperature=temperature)

    def cache_fields(self) -> dict[str, Any]:
        return {
            "system_prompt": self.system_prompt,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


DEFAULT_OPTIONS = GenerationOptions()


def cache_key(
    task: TaskName | str,
    prompt: str,
    options: GenerationOptions,
    schema: Optional[Type[BaseModel]] = None,
) -> str:
    fields = options.cache_fields()
    if schema is not None:
        fields["schema"] = f"{schema.__module__}.{schema.__qualname__}"
    return ResponseCache.key(TaskName(task).value, prompt, fields)


def parse_json_response(response: str) -> Any:
    """Parse a JSON model response, handling markdown code fences."""
    text = response.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return json.loads(text.strip())


def validate_structured(
    schema: Type[T],
    content: str,
    provider: Optional[str] = None,
    task: Optional[str] = None,
) -> T:
    """Parse ``content`` as JSON and validate it against ``schema``."""
    try:
        data = parse_json_response(content)
    except json.JSONDecodeError as e:
        raise SchemaValidationError(
            f"Response from {provider} is not valid JSON: {e}",
            raw_content=content,
            provider=provider,
            task=task,
        ) from e
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(
            f"Response from {provider} does not match {schema.__name__}: "
            f"{e.error_count()} validation error(s)",
            raw_content=content,
            provider=provider,
            task=task,
        ) from e


def _schema_instruction(schema: Type[BaseModel]) -> str:
    return (
        "Respond with a single JSON object only, no prose or markdown. "
        "It must conform to this JSON schema:\n"
        + json.dumps(schema.model_json_schema(), separators=(",", ":"))
    )


class StructuredInvoker:
    """Invokes exactly one provider and enforces the response schema.

    Raises ProviderUnavailableError or RateLimitedError before any network
    call, TransientOverloadError or ProviderCallError when the call fails,
    and SchemaValidationError when the response does not fit the schema.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        rate_limiter: RateLimiter,
        cache: ResponseCache,
        llm_config: LLMConfig,
        usage: Optional[UsageTracker] = None,
    ):
        self.registry = registry
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.llm_config = llm_config
        self.usage = usage or UsageTracker(enabled=False)

    def _caching(self, options: GenerationOptions) -> bool:
        return self.llm_config.caching.enabled and options.use_cache

    def _build_request(
        self,
        task: TaskName,
        prompt: str,
        options: GenerationOptions,
        schema: Optional[Type[BaseModel]],
    ) -> CompletionRequest:
        task_config = self.llm_config.task_config(task)
        system_prompt = options.system_prompt
        if schema is not None:
            instruction = _schema_instruction(schema)
            system_prompt = f"{system_prompt}\n\n{instruction}" if system_prompt else instruction
        temperature = options.temperature if options.temperature is not None else task_config.temperature
        return CompletionRequest(
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=min(max(temperature, 0.0), 2.0),
            max_tokens=options.max_tokens or task_config.max_tokens,
            top_p=task_config.top_p,
            json_mode=schema is not None,
        )

    async def _complete(
        self,
        provider: str,
        task: TaskName,
        handle: ModelHandle,
        request: CompletionRequest,
    ) -> Completion:
        timeout = self.llm_config.task_config(task).timeout_seconds
        if timeout is None:
            return await handle.complete(request)
        try:
            return await asyncio.wait_for(handle.complete(request), timeout)
        except asyncio.TimeoutError as e:
            raise ProviderCallError(
                f"Provider '{provider}' did not respond within {timeout}s",
                provider=provider,
                task=task.value,
            ) from e

    async def _call(
        self,
        provider: str,
        task: TaskName,
        prompt: str,
        options: GenerationOptions,
        schema: Optional[Type[BaseModel]],
    ) -> GenerationResult:
        if not self.registry.is_available(provider):
            raise ProviderUnavailableError(
                f"Provider '{provider}' is not available", provider=provider, task=task.value
            )
        if not self.rate_limiter.try_acquire(provider):
            raise RateLimitedError(
                f"Rate limit reached for provider '{provider}'", provider=provider, task=task.value
            )

        handle = self.registry.get_handle(provider, task)
        request = self._build_request(task, prompt, options, schema)

        started = time.perf_counter()
        try:
            completion = await self._complete(provider, task, handle, request)
        except Exception as e:
            self.usage.record_failure(provider)
            error = classify_provider_error(e, provider, task.value)
            logger.warning(
                "llm_call_failed",
                provider=provider,
                task=task.value,
                model=handle.model,
                transient=error.transient,
                error=str(e),
            )
            if error is e:
                raise
            raise error from e
        latency_ms = (time.perf_counter() - started) * 1000

        cost = calculate_estimated_cost(provider, completion.tokens_used) if self.llm_config.cost_tracking else 0.0
        result = GenerationResult(
            provider=provider,
            model=handle.model,
            content=completion.text,
            tokens_used=completion.tokens_used,
            cost_cents=cost,
            latency_ms=round(latency_ms, 2),
            cached=False,
            grounding=completion.grounding,
        )
        logger.info(
            "llm_call_succeeded",
            provider=provider,
            task=task.value,
            model=handle.model,
            tokens=result.tokens_used,
            latency_ms=result.latency_ms,
        )
        return result

    async def generate(
        self,
        provider: str,
        task: TaskName | str,
        prompt: str,
        options: GenerationOptions = DEFAULT_OPTIONS,
    ) -> GenerationResult:
        """Free-text generation against one provider."""
        task = TaskName(task)
        result = await self._call(provider, task, prompt, options, None)
        self.usage.record_success(result)
        if self._caching(options):
            self.cache.put(cache_key(task, prompt, options), result)
        return result

    async def invoke(
        self,
        provider: str,
        schema: Type[T],
        task: TaskName | str,
        prompt: str,
        options: GenerationOptions = DEFAULT_OPTIONS,
    ) -> T:
        """Structured generation against one provider, validated against ``schema``."""
        task = TaskName(task)
        result = await self._call(provider, task, prompt, options, schema)
        try:
            parsed = validate_structured(schema, result.content, provider, task.value)
        except SchemaValidationError:
            self.usage.record_failure(provider, result)
            logger.warning("llm_schema_mismatch", provider=provider, task=task.value, schema=schema.__name__)
            raise
        self.usage.record_success(result)
        if self._caching(options):
            self.cache.put(cache_key(task, prompt, options, schema), result)
        return parsed
