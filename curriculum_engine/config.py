"""
Configuration module — loads and validates environment variables.
Provider credentials are optional; a provider without credentials is
treated as unavailable for the lifetime of the process.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All environment configuration for the curriculum engine."""

    # Application
    APP_ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: str = Field(default="http://localhost:3000")

    # Provider credentials
    GOOGLE_API_KEY: Optional[str] = Field(default=None)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)

    # AWS Core + Bedrock
    AWS_REGION: str = Field(default="us-east-1")
    AWS_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    BEDROCK_REGION: str = Field(default="us-east-1")

    # LLM routing
    PRIMARY_LLM_PROVIDER: Optional[str] = Field(default=None)
    FALLBACK_PROVIDERS: Optional[str] = Field(default=None)
    LLM_CONFIG_PATH: Optional[str] = Field(default=None)
    LLM_REQUEST_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    LLM_CLIENT_MAX_RETRIES: int = Field(default=2, ge=0)

    # Budgets (advisory)
    ENABLE_COST_TRACKING: Optional[bool] = Field(default=None)
    LLM_BUDGET_DAILY_CENTS: Optional[int] = Field(default=None, ge=0)
    LLM_BUDGET_MONTHLY_CENTS: Optional[int] = Field(default=None, ge=0)

    # Pipeline
    PIPELINE_TIMEOUT_SECONDS: Optional[float] = Field(default=None, gt=0)
    PIPELINE_RECURSION_LIMIT: int = Field(default=50, ge=10)

    # Storage
    STORAGE_BACKEND: str = Field(default="memory")
    DYNAMO_TABLE_CURRICULA: str = Field(default="curricula")

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def fallback_providers_list(self) -> Optional[list[str]]:
        if self.FALLBACK_PROVIDERS is None:
            return None
        return [p.strip() for p in self.FALLBACK_PROVIDERS.split(",") if p.strip()]

    @property
    def has_aws_credentials(self) -> bool:
        return bool(self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def get_settings() -> Settings:
    """Return the process settings, loading them on first use."""
    return settings if settings is not None else init_settings()


# Singleton — imported by other modules
settings: Optional[Settings] = None


def init_settings() -> Settings:
    """Initialize settings singleton. Call once at startup."""
    global settings
    settings = Settings()
    return settings
