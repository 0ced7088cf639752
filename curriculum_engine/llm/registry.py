"""Provider registry: availability and lazily built per-task model handles."""

import functools
import threading
from typing import Callable, Mapping

import structlog

from curriculum_engine.config import Settings
from curriculum_engine.llm.config import KNOWN_PROVIDERS, LLMConfig, default_model_for
from curriculum_engine.llm.errors import ProviderUnavailableError
from curriculum_engine.models.enums import TaskName
from curriculum_engine.providers.base import ModelHandle

logger = structlog.get_logger(__name__)

HandleFactory = Callable[[str], ModelHandle]


class ProviderRegistry:
    """Resolves provider availability once and caches handles per (provider, task).

    ``factories`` maps a provider id to a callable building a handle for a
    model id. A provider is available exactly when it has a factory.
    """

    def __init__(self, llm_config: LLMConfig, factories: Mapping[str, HandleFactory]):
        self.llm_config = llm_config
        self._factories = dict(factories)
        self._available = frozenset(self._factories)
        self._handles: dict[tuple[str, TaskName], ModelHandle] = {}
        self._lock = threading.Lock()
        logger.info("provider_registry_ready", available=sorted(self._available))

    @classmethod
    def from_settings(cls, settings: Settings, llm_config: LLMConfig) -> "ProviderRegistry":
        return cls(llm_config, build_factories(settings))

    def is_available(self, provider: str) -> bool:
        return provider in self._available

    def available_providers(self) -> list[str]:
        return [p for p in KNOWN_PROVIDERS if p in self._available]

    def availability_report(self) -> dict[str, bool]:
        return {p: p in self._available for p in KNOWN_PROVIDERS}

    def model_for(self, provider: str, task: TaskName | str) -> str:
        task_config = self.llm_config.task_config(task)
        if task_config.provider == provider:
            return task_config.model
        return default_model_for(provider, task)

    def get_handle(self, provider: str, task: TaskName | str) -> ModelHandle:
        task = TaskName(task)
        if provider not in self._available:
            raise ProviderUnavailableError(
                f"Provider '{provider}' is not configured",
                provider=provider,
                task=task.value,
            )
        key = (provider, task)
        with self._lock:
            handle = self._handles.get(key)
            if handle is None:
                model = self.model_for(provider, task)
                try:
                    handle = self._factories[provider](model)
                except Exception as e:
                    logger.warning("model_handle_failed", provider=provider, task=task.value, model=model, error=str(e))
                    raise ProviderUnavailableError(
                        f"Cannot build a handle for provider '{provider}': {e}",
                        provider=provider,
                        task=task.value,
                    ) from e
                self._handles[key] = handle
                logger.debug("model_handle_created", provider=provider, task=task.value, model=model)
            return handle


def _memoized(build: Callable[[], object]) -> Callable[[], object]:
    """Build an SDK client on first use and reuse it for every handle."""
    return functools.lru_cache(maxsize=1)(build)


def build_factories(settings: Settings) -> dict[str, HandleFactory]:
    """Handle factories for every provider whose credentials are present."""
    timeout = settings.LLM_REQUEST_TIMEOUT_SECONDS
    retries = settings.LLM_CLIENT_MAX_RETRIES
    factories: dict[str, HandleFactory] = {}

    if settings.GOOGLE_API_KEY:
        from curriculum_engine.providers.gemini_client import GeminiHandle, build_gemini_client

        gemini = _memoized(lambda: build_gemini_client(settings.GOOGLE_API_KEY, timeout))
        factories["gemini"] = lambda model: GeminiHandle(gemini(), model, provider="gemini")
        factories["gemini-pro"] = lambda model: GeminiHandle(gemini(), model, provider="gemini-pro")

    if settings.OPENAI_API_KEY:
        from curriculum_engine.providers.openai_client import OpenAIHandle, build_openai_client

        openai_client = _memoized(lambda: build_openai_client(settings.OPENAI_API_KEY, timeout, retries))
        factories["openai"] = lambda model: OpenAIHandle(openai_client(), model)

    if settings.ANTHROPIC_API_KEY:
        from curriculum_engine.providers.anthropic_client import AnthropicHandle, build_anthropic_client

        anthropic_client = _memoized(lambda: build_anthropic_client(settings.ANTHROPIC_API_KEY, timeout, retries))
        factories["anthropic"] = lambda model: AnthropicHandle(anthropic_client(), model)

    if settings.has_aws_credentials:
        from curriculum_engine.providers.bedrock_client import BedrockHandle, build_bedrock_client

        bedrock = _memoized(lambda: build_bedrock_client(
            settings.BEDROCK_REGION,
            settings.AWS_ACCESS_KEY_ID,
            settings.AWS_SECRET_ACCESS_KEY,
            timeout,
            retries,
        ))
        factories["bedrock"] = lambda model: BedrockHandle(bedrock(), model)

    return factories
