"""Uniform model handle interface shared by all provider clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class CompletionRequest:
    prompt: str
    system_prompt: str = ""
    temperature: float = 0.0
    max_tokens: int = 4096
    top_p: Optional[float] = None
    json_mode: bool = False


@dataclass(frozen=True)
class Completion:
    text: str
    tokens_used: int = 0
    grounding: Optional[dict[str, Any]] = field(default=None)


class ModelHandle(ABC):
    """A configured client for one (provider, model) pair.

    Handles are shared across concurrent pipeline runs and hold only
    credentials and configuration.
    """

    provider: str
    model: str

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> Completion:
        """Run a single completion. SDK exceptions propagate unchanged."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider!r}, model={self.model!r})"
