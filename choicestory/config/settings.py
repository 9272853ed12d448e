"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GEMINI_MODELS = ["gemini-1.5-flash", "gemini-pro", "gemini-1.0-pro"]


class GeminiSettings(BaseSettings):
    """Primary text provider (Google Gemini) configuration."""

    api_key: str = Field(default="", description="Gemini API key")
    models: list[str] = Field(
        default_factory=lambda: list(DEFAULT_GEMINI_MODELS),
        min_length=1,
        description="Model candidates, most preferred first. When a model is reported "
                    "as unavailable the next one is tried. "
                    "Set via GEMINI_MODELS='[\"gemini-1.5-flash\",\"gemini-pro\"]'",
    )
    timeout_seconds: float = Field(default=60.0, gt=0, description="Per-request timeout")

    model_config = SettingsConfigDict(env_prefix="GEMINI_")


class OpenAISettings(BaseSettings):
    """Secondary (fallback) text provider configuration."""

    api_key: str = Field(default="", description="OpenAI API key")
    model: str = Field(default="gpt-4", description="Fixed fallback model")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    timeout_seconds: float = Field(default=60.0, gt=0, description="Per-request timeout")

    model_config = SettingsConfigDict(env_prefix="OPENAI_")


class RetrySettings(BaseSettings):
    """Retry budget and exponential backoff for the primary provider."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts before falling back")
    initial_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Delay after the first failed attempt; doubles after each further failure",
    )

    model_config = SettingsConfigDict(env_prefix="RETRY_")


class PromptGuardSettings(BaseSettings):
    """Prompt-length ceiling and summarization behaviour."""

    max_length: int = Field(default=4000, gt=3, description="Character ceiling for prompts")
    target_length: int = Field(
        default=3800, gt=0, description="Initial summarization target (leaves a buffer)"
    )
    min_target_length: int = Field(
        default=1000,
        gt=0,
        description="Summarization is abandoned (prompt truncated) below this target",
    )
    reduction_factor: float = Field(
        default=0.8, gt=0.0, lt=1.0, description="Target shrink factor when a summary is too long"
    )
    max_attempts: int = Field(default=2, ge=1, description="Summarizer retry budget")
    models: list[str] = Field(
        default_factory=lambda: list(DEFAULT_GEMINI_MODELS),
        min_length=1,
        description="Model candidates for summarization, most preferred first",
    )
    chars_per_token: int = Field(
        default=3, gt=0, description="Rough characters-per-token ratio for output budgets"
    )

    model_config = SettingsConfigDict(env_prefix="PROMPT_GUARD_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    prompt_guard: PromptGuardSettings = Field(default_factory=PromptGuardSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
