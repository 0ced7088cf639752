"""Provider clients exposing the uniform ModelHandle interface."""

from curriculum_engine.providers.base import Completion, CompletionRequest, ModelHandle

__all__ = ["Completion", "CompletionRequest", "ModelHandle"]
