"""
Configuration Management System
================================
Implements environment-driven configuration with type-safe validation,
hierarchical overrides, and zero-runtime-cost abstractions through Pydantic.

Architecture: Strategy Pattern + Singleton + Functional Composition
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import (
    API_KEY_CACHE_PREFIX_LENGTH,
    DEFAULT_BASE_URLS,
    DEFAULT_CATEGORY_BATCH_WORD_COUNTS,
    DEFAULT_MODELS,
    DEFAULT_TARGET_POOL_SIZE,
    DEFAULT_WORD_COUNT_LADDER,
    DISCOVERY_CACHE_TTL_SECONDS,
)
from core.enums import ProviderName, Tone


class LLMSettings(BaseSettings):
    """Vendor endpoints, fallback credentials and call limits."""

    # Process-wide fallback keys; per-business provider configs take precedence
    openai_api_key: Optional[SecretStr] = Field(default=None)
    anthropic_api_key: Optional[SecretStr] = Field(default=None)
    groq_api_key: Optional[SecretStr] = Field(default=None)
    google_api_key: Optional[SecretStr] = Field(default=None)

    openai_base_url: str = Field(default=DEFAULT_BASE_URLS[ProviderName.OPENAI])
    anthropic_base_url: str = Field(default=DEFAULT_BASE_URLS[ProviderName.ANTHROPIC])
    groq_base_url: str = Field(default=DEFAULT_BASE_URLS[ProviderName.GROQ])
    google_base_url: str = Field(default=DEFAULT_BASE_URLS[ProviderName.GOOGLE])

    openai_model: str = Field(default=DEFAULT_MODELS[ProviderName.OPENAI])
    anthropic_model: str = Field(default=DEFAULT_MODELS[ProviderName.ANTHROPIC])
    groq_model: str = Field(default=DEFAULT_MODELS[ProviderName.GROQ])
    google_model: str = Field(default=DEFAULT_MODELS[ProviderName.GOOGLE])

    anthropic_version: str = Field(default="2023-06-01")

    request_timeout: float = Field(default=60.0, gt=0.0, le=600.0)
    max_retries: int = Field(default=2, ge=1, le=10)
    retry_wait_min: float = Field(default=1.0, ge=0.0, le=30.0)
    retry_wait_max: float = Field(default=10.0, ge=0.0, le=120.0)
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2000, ge=100, le=32000)

    model_config = SettingsConfigDict(env_prefix="LLM_", case_sensitive=False, extra="ignore")

    def api_key_for(self, provider: ProviderName) -> Optional[str]:
        """Return the configured fallback key for a provider, if any."""
        secret: Optional[SecretStr] = getattr(self, f"{provider.value}_api_key", None)
        if secret is None:
            return None
        value = secret.get_secret_value().strip()
        return value or None

    def base_url_for(self, provider: ProviderName) -> str:
        return getattr(self, f"{provider.value}_base_url")

    def model_for(self, provider: ProviderName) -> str:
        return getattr(self, f"{provider.value}_model")


class LifecycleSettings(BaseSettings):
    """Template pool maintenance parameters."""

    default_target_pool_size: int = Field(default=DEFAULT_TARGET_POOL_SIZE, ge=0, le=100)
    word_count_ladder: list[int] = Field(default=list(DEFAULT_WORD_COUNT_LADDER))
    category_batch_word_counts: list[int] = Field(
        default=list(DEFAULT_CATEGORY_BATCH_WORD_COUNTS)
    )
    regeneration_tone: Tone = Field(default=Tone.PROFESSIONAL)

    model_config = SettingsConfigDict(
        env_prefix="LIFECYCLE_", case_sensitive=False, extra="ignore"
    )

    @field_validator("word_count_ladder", "category_batch_word_counts")
    @classmethod
    def validate_word_counts(cls, v: list[int]) -> list[int]:
        """Ladders must be non-empty and strictly positive."""
        if not v:
            raise ValueError("Word count ladder cannot be empty")
        if any(count <= 0 for count in v):
            raise ValueError(f"Word counts must be positive, got {v}")
        return v


class DiscoverySettings(BaseSettings):
    """Model catalog discovery cache."""

    cache_ttl_seconds: int = Field(default=DISCOVERY_CACHE_TTL_SECONDS, ge=0)
    api_key_prefix_length: int = Field(default=API_KEY_CACHE_PREFIX_LENGTH, ge=1, le=64)

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_", case_sensitive=False, extra="ignore"
    )


class MonitoringSettings(BaseSettings):
    """Observability and monitoring configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")
    enable_metrics: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="MONITORING_", case_sensitive=False, extra="ignore"
    )


class Settings(BaseSettings):
    """
    Master configuration orchestrator.

    Implements hierarchical configuration composition with environment-specific
    overrides and runtime validation.
    """

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    debug: bool = Field(default=False, alias="DEBUG")

    # Application metadata
    app_name: str = Field(default="Review Template Engine")
    app_version: str = Field(default="1.0.0")

    # Component configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("debug")
    @classmethod
    def validate_debug_mode(cls, v: bool, info) -> bool:
        """Ensure debug mode is disabled in production."""
        if info.data.get("environment") == "production" and v:
            raise ValueError("Debug mode must be disabled in production")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Singleton factory for global settings access.

    Uses LRU cache to ensure single instance across application lifetime.

    Returns:
        Settings: Validated, immutable settings instance
    """
    return Settings()


__all__ = [
    "Settings",
    "LLMSettings",
    "LifecycleSettings",
    "DiscoverySettings",
    "MonitoringSettings",
    "get_settings",
]
