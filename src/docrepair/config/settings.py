"""
Application Settings - Pydantic Settings for configuration management.

Supports environment variables and .env file loading. All settings are
validated once at startup and frozen for the lifetime of the process.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import BeforeValidator, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN_LADDER = [100_000, 150_000, 200_000]


def normalize_to_lowercase(v: str) -> str:
    """Normalize string to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


class QueueSettings(BaseSettings):
    """Queue provider and consumer retry settings."""

    model_config = SettingsConfigDict(env_prefix="QUEUE_", frozen=True)

    backend: Annotated[
        Literal["sqs", "memory"],
        BeforeValidator(normalize_to_lowercase),
    ] = Field(default="sqs", description="Queue provider backend")

    # SQS connection
    queue_url: str | None = Field(default=None, description="SQS queue URL")
    region: str = Field(default="us-east-1", min_length=1, description="AWS region")
    endpoint: str | None = Field(default=None, description="Custom endpoint (LocalStack)")

    # Consumer behaviour
    concurrency: int = Field(default=5, gt=0, description="Max messages handled concurrently per batch")
    max_attempts: int = Field(default=3, gt=0, description="Deliveries before a job is dead-lettered")
    base_delay_seconds: float = Field(default=5.0, gt=0, description="Backoff delay for the first retry")
    backoff_ceiling_seconds: float = Field(default=300.0, gt=0, description="Upper bound for backoff delay")
    visibility_timeout: int = Field(default=300, gt=0, description="Visibility window in seconds")
    wait_time_seconds: int = Field(default=20, ge=0, le=20, description="Long-poll wait in seconds")
    max_messages: int = Field(default=1, ge=1, le=10, description="Messages per receive call")
    poll_error_pause_seconds: float = Field(default=1.0, ge=0, description="Pause after a failed poll")

    @model_validator(mode="after")
    def _check_consistency(self) -> "QueueSettings":
        if self.backend == "sqs" and not self.queue_url:
            raise ValueError("QUEUE_QUEUE_URL is required for the sqs backend")
        if self.backoff_ceiling_seconds < self.base_delay_seconds:
            raise ValueError("backoff_ceiling_seconds must be >= base_delay_seconds")
        return self


class LLMSettings(BaseSettings):
    """Generative corrector settings."""

    model_config = SettingsConfigDict(env_prefix="LLM_", frozen=True)

    # Provider (case-insensitive via BeforeValidator)
    provider: Annotated[
        Literal["openai", "anthropic", "azure", "local"],
        BeforeValidator(normalize_to_lowercase),
    ] = Field(default="openai", description="LLM provider")

    # API Keys
    openai_api_key: SecretStr | None = Field(default=None, description="OpenAI API key")
    anthropic_api_key: SecretStr | None = Field(default=None, description="Anthropic API key")

    # Azure OpenAI settings
    azure_openai_api_key: SecretStr | None = Field(default=None, description="Azure OpenAI API key")
    azure_openai_endpoint: str | None = Field(default=None, description="Azure OpenAI endpoint URL")
    azure_openai_deployment: str | None = Field(default=None, description="Azure OpenAI deployment name")
    azure_openai_api_version: str = Field(default="2024-02-01", description="Azure OpenAI API version")

    # Local LLM settings (Ollama)
    local_llm_base_url: str = Field(default="http://localhost:11434", description="Local LLM base URL")

    model: str = Field(default="gpt-4o-mini", min_length=1, description="Model name")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="LLM temperature")
    request_timeout: int = Field(default=600, gt=0, description="Per-request timeout in seconds")

    token_ladder: list[int] = Field(
        default_factory=lambda: list(DEFAULT_TOKEN_LADDER),
        description="Ascending max-token budgets tried when output is truncated",
    )

    @field_validator("token_ladder")
    @classmethod
    def _ladder_ascending(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("token_ladder must contain at least one budget")
        if any(b <= 0 for b in v):
            raise ValueError("token_ladder budgets must be positive")
        if any(later <= earlier for earlier, later in zip(v, v[1:])):
            raise ValueError("token_ladder must be strictly ascending")
        return v


class StoreSettings(BaseSettings):
    """Persistence store settings."""

    model_config = SettingsConfigDict(env_prefix="STORE_", frozen=True)

    backend: Annotated[
        Literal["neo4j", "memory"],
        BeforeValidator(normalize_to_lowercase),
    ] = Field(default="neo4j", description="Document store backend")

    uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    username: str = Field(default="neo4j", description="Neo4j username")
    password: SecretStr = Field(default=SecretStr("password"), description="Neo4j password")
    database: str = Field(default="neo4j", description="Neo4j database name")
    max_connection_pool_size: int = Field(default=50, description="Connection pool size")

    id_field: str = Field(default="_id", min_length=1, description="Record key holding the document id")


class ValidationSettings(BaseSettings):
    """Document schema settings."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_", frozen=True)

    schema_model: str | None = Field(
        default=None,
        description="Pydantic model describing a valid document, as 'module:Class'",
    )
    fallback_id_fields: list[str] = Field(
        default_factory=list,
        description="Record keys tried for the id when the id field is missing",
    )


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_", frozen=True)

    log_format: Literal["json", "console"] = Field(
        default="json", description="Log format (json for production, console for development)"
    )
    dead_letter_dir: str | None = Field(
        default=None,
        description="Directory for dead-letter records (in-memory when unset)",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_name: str = Field(default="docrepair", description="Application name")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Sub-settings
    queue: QueueSettings = Field(default_factory=QueueSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
