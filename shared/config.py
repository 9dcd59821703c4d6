"""
Shared configuration management for the Space Data Proxy.
"""

from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Upstream API
    upstream_base_url: str = "https://api.nasa.gov"
    nasa_api_key: str = Field(
        default="DEMO_KEY",
        validation_alias=AliasChoices("PROXY_NASA_API_KEY", "NASA_API_KEY"),
    )
    upstream_timeout: float = 30.0

    # Cache store
    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_max_entries: int = 1024
    cache_default_ttl: int = Field(
        default=24 * 60 * 60,
        validation_alias=AliasChoices("PROXY_CACHE_DEFAULT_TTL", "CACHE_DURATION"),
    )
    cache_ready_timeout: float = 2.0
    skip_cache: bool = Field(
        default=False,
        validation_alias=AliasChoices("PROXY_SKIP_CACHE", "SKIP_CACHE"),
    )

    # TTL policy
    default_ttl: int = 60 * 60
    apod_cache_ttl: int = 60 * 60 * 24 * 30
    apod_404_min_ttl: int = 60 * 60
    epic_cache_ttl: int = 60 * 60 * 24 * 30
    epic_404_min_ttl: int = 60 * 60
    epic_available_cache_ttl: int = 60 * 60 * 3
    donki_cache_ttl: int = 60 * 60 * 24
    donki_min_cache_ttl: int = 60 * 60
    donki_lookahead_days: int = 6
    donki_success_ttl: int = 7 * 24 * 60 * 60
    donki_failure_ttl: int = 24 * 60 * 60
    rovers_cache_ttl: int = 60 * 60 * 3
    insight_weather_cache_ttl: int = 60 * 60 * 24

    # Date validity window
    future_date_timezone: str = "Pacific/Kiritimati"
    backfill_timezone: str = "Etc/GMT+12"

    # Report extraction (OpenAI-compatible chat completions)
    llm_api_url: str = Field(
        default="https://api.groq.com/openai/v1/chat/completions",
        validation_alias=AliasChoices("PROXY_LLM_API_URL", "GROQ_API_URL"),
    )
    llm_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("PROXY_LLM_API_KEY", "GROQ_API_KEY"),
    )
    llm_model: str = Field(
        default="llama-3.1-8b-instant",
        validation_alias=AliasChoices("PROXY_LLM_MODEL", "GROQ_LLM_MODEL"),
    )
    llm_max_tokens: int = Field(
        default=10000,
        validation_alias=AliasChoices("PROXY_LLM_MAX_TOKENS", "GROQ_MAX_TOKENS"),
    )
    llm_timeout: float = 120.0
    enrichment_ttl: int = 60 * 60 * 24 * 30


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
