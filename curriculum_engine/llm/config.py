"""Task-level LLM configuration: models, limits, budgets, provider selection."""

import json
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from curriculum_engine.config import Settings
from curriculum_engine.models.enums import ProviderName, TaskName

logger = structlog.get_logger(__name__)

KNOWN_PROVIDERS = tuple(p.value for p in ProviderName)


class ConfigurationError(Exception):
    """Raised when the LLM configuration fails validation at startup."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid LLM configuration: " + "; ".join(problems))


def _check_provider(value: str) -> str:
    if value not in KNOWN_PROVIDERS:
        raise ValueError(f"unknown provider '{value}' (expected one of {', '.join(KNOWN_PROVIDERS)})")
    return value


class ModelConfig(BaseModel):
    provider: str
    model: str
    temperature: float
    max_tokens: int = Field(gt=0)
    top_p: Optional[float] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator("provider")
    @classmethod
    def check_provider(cls, value: str) -> str:
        return _check_provider(value)


class RateLimit(BaseModel):
    requests_per_minute: int = Field(gt=0)


class CachingConfig(BaseModel):
    enabled: bool = True
    ttl_minutes: float = Field(default=60, gt=0)
    max_size: int = Field(default=1000, gt=0)


class BudgetLimits(BaseModel):
    daily_budget_cents: int = Field(ge=0)
    monthly_budget_cents: int = Field(ge=0)


class LLMConfig(BaseModel):
    primary_provider: str
    fallback_providers: list[str] = Field(default_factory=list)
    models: dict[TaskName, ModelConfig]
    rate_limits: dict[str, RateLimit] = Field(default_factory=dict)
    retry_delay_ms: int = Field(default=1000, ge=0)
    enable_fallback: bool = True
    cost_tracking: bool = True
    budget_limits: Optional[BudgetLimits] = None
    caching: CachingConfig = Field(default_factory=CachingConfig)
    environment: str = "development"

    @field_validator("primary_provider")
    @classmethod
    def check_primary(cls, value: str) -> str:
        return _check_provider(value)

    @field_validator("fallback_providers")
    @classmethod
    def check_fallbacks(cls, value: list[str]) -> list[str]:
        for provider in value:
            _check_provider(provider)
        return value

    def task_config(self, task: TaskName | str) -> ModelConfig:
        return self.models[TaskName(task)]


# ─────────────────────────── Defaults ───────────────────────────

# Default model per provider, with task-specific overrides
PROVIDER_MODEL_MAP: dict[str, dict[str, str]] = {
    "gemini": {
        "default": "gemini-2.5-flash",
        TaskName.QUALITY_EVALUATION.value: "gemini-2.5-pro",
        TaskName.COMPANY_RESEARCH.value: "gemini-2.5-pro",
    },
    "gemini-pro": {"default": "gemini-2.5-pro"},
    "openai": {"default": "gpt-4.1-mini"},
    "anthropic": {"default": "claude-sonnet-4-20250514"},
    "bedrock": {"default": "anthropic.claude-sonnet-4-6"},
}

# Estimated USD cost per token, used for usage and budget tracking
PROVIDER_CAPABILITIES: dict[str, dict[str, Any]] = {
    "gemini": {"strengths": ["fast", "cost_effective", "large_context"], "cost_per_token": 0.00001, "average_latency_ms": 800},
    "gemini-pro": {"strengths": ["reasoning", "large_context"], "cost_per_token": 0.00001, "average_latency_ms": 1500},
    "openai": {"strengths": ["reliable", "consistent"], "cost_per_token": 0.00003, "average_latency_ms": 1200},
    "anthropic": {"strengths": ["high_quality", "reasoning"], "cost_per_token": 0.00008, "average_latency_ms": 2000},
    "bedrock": {"strengths": ["high_quality", "aws_native"], "cost_per_token": 0.00008, "average_latency_ms": 2000},
}

TASK_PROVIDER_RECOMMENDATIONS: dict[TaskName, list[str]] = {
    TaskName.JOB_PARSING: ["gemini", "gemini-pro", "openai"],
    TaskName.COMPANY_RESEARCH: ["gemini", "gemini-pro", "openai"],
    TaskName.PERSONA_GENERATION: ["gemini", "gemini-pro", "openai"],
    TaskName.QUESTION_GENERATION: ["gemini", "gemini-pro", "openai"],
    TaskName.STRUCTURE_DESIGN: ["gemini", "gemini-pro", "openai"],
    TaskName.ROUND_GENERATION: ["gemini", "gemini-pro", "openai"],
    TaskName.QUALITY_EVALUATION: ["gemini-pro", "gemini", "openai"],
}

DEFAULT_LLM_CONFIG = LLMConfig(
    primary_provider="gemini",
    fallback_providers=["gemini-pro", "openai"],
    models={
        TaskName.JOB_PARSING: ModelConfig(provider="openai", model="gpt-4.1-mini", temperature=0.1, max_tokens=2000),
        TaskName.COMPANY_RESEARCH: ModelConfig(provider="openai", model="gpt-4.1-mini", temperature=0.3, max_tokens=4000),
        TaskName.PERSONA_GENERATION: ModelConfig(provider="openai", model="gpt-4.1-mini", temperature=0.7, max_tokens=3000),
        TaskName.QUESTION_GENERATION: ModelConfig(provider="openai", model="gpt-4.1-mini", temperature=0.6, max_tokens=2500),
        TaskName.STRUCTURE_DESIGN: ModelConfig(provider="gemini", model="gemini-2.5-flash", temperature=0.4, max_tokens=4000),
        TaskName.ROUND_GENERATION: ModelConfig(provider="gemini", model="gemini-2.5-flash", temperature=0.6, max_tokens=6000),
        TaskName.QUALITY_EVALUATION: ModelConfig(provider="openai", model="gpt-4.1-mini", temperature=0.2, max_tokens=1500),
    },
    rate_limits={
        "gemini": RateLimit(requests_per_minute=60),
        "openai": RateLimit(requests_per_minute=50),
        "anthropic": RateLimit(requests_per_minute=40),
    },
    retry_delay_ms=1000,
    budget_limits=BudgetLimits(daily_budget_cents=500, monthly_budget_cents=10000),
    caching=CachingConfig(enabled=True, ttl_minutes=60, max_size=1000),
)

PRODUCTION_OVERRIDES: dict[str, Any] = {
    "environment": "production",
    "retry_delay_ms": 2000,
    "budget_limits": {"daily_budget_cents": 2000, "monthly_budget_cents": 50000},
    "caching": {"enabled": True, "ttl_minutes": 120, "max_size": 5000},
}

DEVELOPMENT_OVERRIDES: dict[str, Any] = {
    "environment": "development",
    "retry_delay_ms": 500,
    "cost_tracking": True,
    "fallback_providers": ["gemini-pro"],
    "budget_limits": {"daily_budget_cents": 100, "monthly_budget_cents": 2000},
}

ENVIRONMENT_OVERRIDES: dict[str, dict[str, Any]] = {
    "production": PRODUCTION_OVERRIDES,
    "development": DEVELOPMENT_OVERRIDES,
}


# ─────────────────────────── Loading ───────────────────────────


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _settings_overrides(settings: Settings) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if settings.PRIMARY_LLM_PROVIDER:
        overrides["primary_provider"] = settings.PRIMARY_LLM_PROVIDER
    if settings.fallback_providers_list is not None:
        overrides["fallback_providers"] = settings.fallback_providers_list
    if settings.ENABLE_COST_TRACKING is not None:
        overrides["cost_tracking"] = settings.ENABLE_COST_TRACKING
    budget: dict[str, int] = {}
    if settings.LLM_BUDGET_DAILY_CENTS is not None:
        budget["daily_budget_cents"] = settings.LLM_BUDGET_DAILY_CENTS
    if settings.LLM_BUDGET_MONTHLY_CENTS is not None:
        budget["monthly_budget_cents"] = settings.LLM_BUDGET_MONTHLY_CENTS
    if budget:
        overrides["budget_limits"] = budget
    return overrides


def load_llm_config(settings: Settings, base: LLMConfig = DEFAULT_LLM_CONFIG) -> LLMConfig:
    """
    Build the effective LLM configuration.

    Layers, later wins: defaults, environment overrides (APP_ENV), the JSON
    file at LLM_CONFIG_PATH, then individual environment variables.

    Raises:
        ConfigurationError: if the result fails schema or semantic validation.
    """
    data = base.model_dump(mode="json")
    data = _deep_merge(data, ENVIRONMENT_OVERRIDES.get(settings.APP_ENV, {"environment": settings.APP_ENV}))

    if settings.LLM_CONFIG_PATH:
        path = Path(settings.LLM_CONFIG_PATH)
        try:
            file_overrides = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError([f"Cannot read LLM config file {path}: {e}"]) from e
        data = _deep_merge(data, file_overrides)
        logger.info("llm_config_file_loaded", path=str(path))

    data = _deep_merge(data, _settings_overrides(settings))

    try:
        config = LLMConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError([
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]) from e

    problems = validate_llm_config(config)
    if problems:
        raise ConfigurationError(problems)

    logger.info(
        "llm_config_loaded",
        environment=config.environment,
        primary=config.primary_provider,
        fallbacks=config.fallback_providers,
    )
    return config


def validate_llm_config(config: LLMConfig) -> list[str]:
    """Return a list of semantic problems with the configuration (empty when valid)."""
    errors: list[str] = []

    if config.primary_provider in config.fallback_providers:
        errors.append("Primary provider should not be in fallback list")

    if len(set(config.fallback_providers)) != len(config.fallback_providers):
        errors.append("Fallback list contains duplicate providers")

    for task in TaskName:
        if task not in config.models:
            errors.append(f"Missing model configuration for task: {task.value}")

    for task, model_config in config.models.items():
        if not 0 <= model_config.temperature <= 2:
            errors.append(
                f"Invalid temperature for {task.value}: {model_config.temperature} (must be 0-2)"
            )

    return errors


def get_optimal_provider(
    task: TaskName | str,
    config: LLMConfig,
    is_available: Callable[[str], bool],
) -> str:
    """
    Pick the most suitable provider for a task.

    The task's configured provider wins when it is part of the primary/fallback
    chain or has credentials; otherwise the first task recommendation in the
    chain; otherwise the primary provider.
    """
    task = TaskName(task)
    chain = [config.primary_provider, *config.fallback_providers]
    configured = config.models[task].provider if task in config.models else None

    if configured:
        if configured in chain or is_available(configured):
            return configured
        logger.warning("configured_provider_unavailable", task=task.value, provider=configured)

    for recommended in TASK_PROVIDER_RECOMMENDATIONS.get(task, []):
        if recommended in chain:
            return recommended

    return config.primary_provider


def default_model_for(provider: str, task: TaskName | str) -> str:
    models = PROVIDER_MODEL_MAP[provider]
    return models.get(TaskName(task).value, models["default"])


def calculate_estimated_cost(provider: str, tokens: int) -> float:
    """Estimated cost in cents for ``tokens`` tokens on ``provider``."""
    capabilities = PROVIDER_CAPABILITIES.get(provider)
    if capabilities is None:
        return 0.0
    return capabilities["cost_per_token"] * tokens * 100
