"""
Centralized Configuration for the Pitch Deck backend.

All environment variables are managed here using Pydantic Settings.
This provides:
- Type validation
- Default values
- Clear documentation
- Single source of truth

Usage:
    from pitchdeck_backend.config import settings

    # Access configuration
    db_url = settings.database_url
    timeout = settings.session_timeout_minutes
"""

import os
from typing import Optional, Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with PITCHDECK_ where applicable.
    See .env.example for all available options.
    """

    # =============================================================================
    # Application Environment
    # =============================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
        validation_alias="PITCHDECK_ENVIRONMENT"
    )

    testing: bool = Field(
        default=False,
        description="Enable testing mode",
        validation_alias="TESTING"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validation_alias="PITCHDECK_LOG_LEVEL"
    )

    allowed_origins: str = Field(
        default="*",
        description="CORS allowed origins (comma-separated or '*')",
        validation_alias="PITCHDECK_ALLOWED_ORIGINS"
    )

    # =============================================================================
    # Database
    # =============================================================================

    database_url: str = Field(
        default="sqlite:///./pitchdeck.db",
        description="Database connection URL (PostgreSQL or SQLite)",
        validation_alias="DATABASE_URL"
    )

    # =============================================================================
    # Authentication (tokens are issued by the external identity provider)
    # =============================================================================

    secret_key: str = Field(
        ...,  # Required field
        description="Key used to verify bearer tokens issued by the identity provider",
        validation_alias="PITCHDECK_SECRET_KEY"
    )

    jwt_algorithm: str = Field(
        default="HS256",
        description="Signing algorithm of identity provider tokens",
        validation_alias="PITCHDECK_JWT_ALGORITHM"
    )

    token_audience: Optional[str] = Field(
        default=None,
        description="Expected 'aud' claim (skipped when unset)",
        validation_alias="PITCHDECK_TOKEN_AUDIENCE"
    )

    # =============================================================================
    # Session Tracking
    # =============================================================================

    session_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Minutes of inactivity after which a session expires",
        validation_alias="SESSION_TIMEOUT_MINUTES"
    )

    session_sweep_interval_seconds: int = Field(
        default=300,
        ge=1,
        description="How often the background sweep expires stale sessions",
        validation_alias="SESSION_SWEEP_INTERVAL_SECONDS"
    )

    max_session_actions: int = Field(
        default=50,
        ge=1,
        description="Maximum actions kept in a session's in-memory history",
        validation_alias="MAX_SESSION_ACTIONS"
    )

    # =============================================================================
    # Learning & Recommendations
    # =============================================================================

    recent_event_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum events read when deriving a behaviour profile",
        validation_alias="RECENT_EVENT_LIMIT"
    )

    min_pattern_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Patterns at or below this confidence are ignored for recommendations",
        validation_alias="MIN_PATTERN_CONFIDENCE"
    )

    max_recommendations: int = Field(
        default=8,
        ge=1,
        description="Number of ranked recommendations returned per slide",
        validation_alias="MAX_RECOMMENDATIONS"
    )

    # =============================================================================
    # LLM Providers
    # =============================================================================

    llm_provider: Literal["openai", "groq", "ollama", "mock"] = Field(
        default="groq",
        description="Preferred LLM provider for slide generation",
        validation_alias="LLM_PROVIDER"
    )

    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key",
        validation_alias="OPENAI_API_KEY"
    )

    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model for slide generation",
        validation_alias="OPENAI_MODEL"
    )

    groq_api_key: Optional[str] = Field(
        default=None,
        description="Groq API key",
        validation_alias="GROQ_API_KEY"
    )

    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq OpenAI-compatible endpoint",
        validation_alias="GROQ_BASE_URL"
    )

    groq_model: str = Field(
        default="llama-3.1-8b-instant",
        description="Groq model for slide generation",
        validation_alias="GROQ_MODEL"
    )

    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama API base URL",
        validation_alias="OLLAMA_BASE_URL"
    )

    ollama_model: str = Field(
        default="llama3.1",
        description="Ollama model for slide generation",
        validation_alias="OLLAMA_MODEL"
    )

    llm_timeout_seconds: int = Field(
        default=120,
        ge=1,
        description="Request timeout for LLM provider calls",
        validation_alias="LLM_TIMEOUT_SECONDS"
    )

    llm_max_tokens: int = Field(
        default=1200,
        ge=1,
        description="Maximum completion tokens per slide",
        validation_alias="LLM_MAX_TOKENS"
    )

    # =============================================================================
    # Computed Properties
    # =============================================================================

    @property
    def cors_origins(self) -> list:
        """Parse allowed_origins into a list."""
        if self.allowed_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    # =============================================================================
    # Pydantic Model Configuration
    # =============================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields for forward compatibility
    )

    # =============================================================================
    # Field Validators
    # =============================================================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Convert postgres:// to postgresql:// for SQLAlchemy compatibility."""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is uppercase and valid."""
        v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is lowercase."""
        return v.lower() if isinstance(v, str) else v


# =============================================================================
# Global Settings Instance
# =============================================================================

# Create settings instance - will raise validation error if required fields missing
try:
    settings = Settings()
except Exception as e:
    # In testing mode, create minimal settings
    if os.getenv("TESTING") == "true":
        os.environ.setdefault("PITCHDECK_SECRET_KEY", "test-secret-key-for-testing-only")
        settings = Settings()
    else:
        raise RuntimeError(
            f"Failed to load application settings: {e}\n\n"
            "Required environment variables:\n"
            "- PITCHDECK_SECRET_KEY (shared with the identity provider)\n\n"
            "See .env.example for all available configuration options."
        ) from e


__all__ = ["settings", "Settings"]
