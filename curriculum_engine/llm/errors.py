"""
Exception classes for the multi-provider invocation layer.

Provider-level errors are recovered by the orchestrators through fallback;
only AllProvidersExhaustedError is expected to reach pipeline nodes.
"""

from typing import Any, Optional, Sequence

OVERLOAD_STATUS_CODES = frozenset({503, 529})
OVERLOAD_MARKERS = ("overloaded", "service unavailable", "serviceunavailable", "temporarily unavailable")


class LLMError(Exception):
    """Base exception for all provider invocation errors."""

    transient = False

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        task: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.task = task
        self.status_code = status_code


class ProviderUnavailableError(LLMError):
    """No credentials or no handle factory for the provider."""


class RateLimitedError(LLMError):
    """Local requests-per-minute admission check failed."""


class TransientOverloadError(LLMError):
    """Provider signalled a temporary capacity failure."""

    transient = True


class ProviderCallError(LLMError):
    """Any other failure while calling the provider."""


class SchemaValidationError(LLMError):
    """Provider response could not be parsed into the requested schema."""

    def __init__(self, message: str, raw_content: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.raw_content = raw_content


class AllProvidersExhaustedError(LLMError):
    """Every candidate provider for a task was tried and failed."""

    def __init__(
        self,
        task: Optional[str],
        attempted: Sequence[str],
        last_error: Optional[BaseException] = None,
    ):
        self.attempted = list(attempted)
        self.last_error = last_error
        if self.attempted:
            message = f"All providers failed for task '{task}' (tried: {', '.join(self.attempted)})"
        else:
            message = f"No available providers for task '{task}'"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message, task=task)


def _extract_status_code(error: Exception) -> Optional[int]:
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    # botocore ClientError
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if isinstance(status, int):
            return status
    return None


def _extract_error_code(error: Exception) -> str:
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return str(response.get("Error", {}).get("Code", ""))
    return ""


def is_overload_error(error: Exception) -> bool:
    """True when the error reports temporary provider capacity exhaustion."""
    if _extract_status_code(error) in OVERLOAD_STATUS_CODES:
        return True
    text = f"{_extract_error_code(error)} {error}".lower()
    return any(marker in text for marker in OVERLOAD_MARKERS)


def classify_provider_error(error: Exception, provider: str, task: Optional[str] = None) -> LLMError:
    """
    Classify a raw SDK exception into the invocation error taxonomy.

    Args:
        error: The original exception raised by a provider client.
        provider: The provider that raised it.
        task: The task being served, if known.

    Returns:
        TransientOverloadError for capacity signals, ProviderCallError otherwise.
    """
    if isinstance(error, LLMError):
        return error
    status_code = _extract_status_code(error)
    message = str(error) or type(error).__name__
    if is_overload_error(error):
        return TransientOverloadError(message, provider=provider, task=task, status_code=status_code)
    return ProviderCallError(message, provider=provider, task=task, status_code=status_code)
