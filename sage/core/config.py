"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="sage-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # OpenRouter (OpenAI-compatible chat completions)
    openrouter_api_key: str = Field(default="", description="OpenRouter API key; empty means not configured")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1", description="OpenRouter API base URL")
    site_url: str = Field(default="http://localhost:3000", description="Public site URL sent as HTTP-Referer")
    summary_model: str = Field(default="openai/gpt-4o-mini", description="Model used for summaries and profiles")
    summary_temperature: float = Field(default=0.7, description="Sampling temperature for summaries")
    summary_max_tokens: int = Field(default=1024, description="Completion cap for conversation summaries")
    profile_max_tokens: int = Field(default=300, description="Completion cap for profile paragraphs")
    llm_timeout_seconds: float = Field(default=30.0, description="Timeout for a single LLM call")

    # Credits
    tokens_per_credit: int = Field(default=10, description="Tokens billed per credit")
    free_credits: int = Field(default=1000, description="Credits granted to new users")
    summary_min_credits: int = Field(default=5, description="Minimum balance required before summarizing")
    insights_min_credits: int = Field(default=3, description="Minimum balance required before extracting session insights")

    # Conversation lifecycle pipeline
    lifecycle_max_attempts: int = Field(default=3, description="Run-level attempts before a run fails terminally")
    lifecycle_retry_backoff_seconds: float = Field(default=2.0, description="Base backoff between run attempts")
    lifecycle_worker_concurrency: int = Field(default=2, description="Number of lifecycle worker tasks")
    lifecycle_finalize_on_failure: bool = Field(
        default=True,
        description="Mark the conversation inactive after a run fails terminally",
    )
    lifecycle_resume_on_startup: bool = Field(
        default=True,
        description="Re-enqueue pending/running runs left by a previous process",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def has_llm_credentials(self) -> bool:
        """Check whether an OpenRouter API key is configured."""
        return bool(self.openrouter_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
