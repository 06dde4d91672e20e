"""Configuration management for semcache.

Settings are read from environment variables (and ``.env``), with defaults
for the cache and embedding sections optionally taken from ``semcache.yaml``.
Precedence: environment > semcache.yaml > built-in defaults.

Example semcache.yaml:

    cache:
      similarity_threshold: 0.95
      feedback_cache_ttl: 172800
      embedding_cache_ttl: 604800
      max_items: 100000
    embeddings:
      provider: openai
      model: text-embedding-3-small
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@lru_cache(maxsize=1)
def load_yaml_config() -> dict[str, Any]:
    """Load the ``cache`` and ``embeddings`` sections of semcache.yaml.

    Returns:
        Flat dict of option name -> value. Embedding options are prefixed
        with ``embedding_`` (``provider`` -> ``embedding_provider``). Empty
        dict if no readable YAML file is found.
    """
    search_paths = [
        Path(__file__).parent.parent.parent / "semcache.yaml",  # Project root
        Path.cwd() / "semcache.yaml",
    ]

    for config_path in search_paths:
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError):
            continue
        if not isinstance(config, dict):
            continue

        result: dict[str, Any] = {}
        cache_section = config.get("cache", {})
        if isinstance(cache_section, dict):
            result.update(cache_section)
        embeddings_section = config.get("embeddings", {})
        if isinstance(embeddings_section, dict):
            for key, value in embeddings_section.items():
                result[f"embedding_{key}"] = value
        return result

    return {}


def _yaml_default(key: str, default: Any) -> Any:
    return load_yaml_config().get(key, default)


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Lookup policy
    similarity_threshold: float = Field(
        default_factory=lambda: _yaml_default("similarity_threshold", 0.95),
        description="Minimum cosine similarity to accept a semantic hit",
        gt=0.0,
        le=1.0,
    )
    similarity_top_k: int = Field(
        default_factory=lambda: _yaml_default("similarity_top_k", 3),
        description="Nearest neighbours requested per similarity probe",
        ge=1,
        le=50,
    )

    # TTLs and bounds
    feedback_cache_ttl: int = Field(
        default_factory=lambda: _yaml_default("feedback_cache_ttl", 172800),
        description="Feedback entry TTL in seconds (48 hours)",
        ge=60,
    )
    embedding_cache_ttl: int = Field(
        default_factory=lambda: _yaml_default("embedding_cache_ttl", 604800),
        description="Embedding TTL in seconds (7 days), at least the feedback TTL",
        ge=60,
    )
    max_items: int = Field(
        default_factory=lambda: _yaml_default("max_items", 100_000),
        alias="cache_max_items",
        description="Maximum exact-match entries before LRU eviction",
        ge=1,
    )
    key_prefix: str = Field(
        default="semcache", alias="cache_key_prefix", description="Redis key namespace"
    )

    # Backends
    exact_backend: Literal["redis", "memory"] = Field(
        default="redis", description="Exact-match and embedding cache backend"
    )
    similarity_backend: Literal["qdrant", "memory"] = Field(
        default="qdrant", description="Vector similarity backend"
    )

    # Redis
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL")
    redis_timeout: float = Field(
        default=2.0, description="Redis operation timeout seconds", gt=0.0, le=30.0
    )
    redis_configure_lru: bool = Field(
        default=False,
        description="Set maxmemory-policy=allkeys-lru on connect (needs CONFIG rights)",
    )

    # Qdrant
    qdrant_url: str = Field(default="http://localhost:6333", description="Qdrant URL")
    qdrant_api_key: str = Field(default="", description="Qdrant API key")
    qdrant_collection: str = Field(
        default="feedback_cache", description="Qdrant collection for feedback vectors"
    )
    qdrant_timeout: float = Field(
        default=5.0, description="Qdrant request timeout seconds", gt=0.0, le=60.0
    )

    # Embeddings
    embedding_provider: str = Field(
        default_factory=lambda: _yaml_default("embedding_provider", "auto"),
        description="Embedding provider (auto, openai, fastembed, none)",
    )
    embedding_model: str | None = Field(
        default_factory=lambda: _yaml_default("embedding_model", None),
        description="Embedding model identifier (None = provider default)",
    )
    embedding_api_key: str = Field(default="", description="Embedding provider API key")
    embedding_dimensions: int | None = Field(
        default_factory=lambda: _yaml_default("embedding_dimensions", None),
        description="Optional dimension reduction (text-embedding-3-* only)",
    )
    embedding_timeout: float = Field(
        default=5.0, description="Embedding call timeout seconds", gt=0.0, le=120.0
    )

    # Fallback analyzer
    analysis_timeout: float = Field(
        default=30.0, description="Fallback analyzer timeout seconds", gt=0.0, le=600.0
    )

    # Resilience
    circuit_breaker_threshold: int = Field(
        default=5, description="Failures before opening circuit", ge=1, le=100
    )
    circuit_breaker_timeout: int = Field(
        default=60, description="Seconds before retrying an open circuit", ge=1, le=3600
    )
    population_retry_delay: float = Field(
        default=1.0, description="Delay before the background population retry", ge=0.0
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str | None = Field(default=None, description="json or console")
    environment: str = Field(
        default="development", description="Environment (development, production)"
    )

    # OpenTelemetry Configuration
    otel_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry instrumentation"
    )
    otel_service_name: str = Field(
        default="semcache", description="Service name for telemetry"
    )
    otel_exporter_otlp_endpoint: str = Field(
        default="http://localhost:4317", description="OTLP gRPC endpoint"
    )
    otel_exporter_otlp_headers: str = Field(
        default="", description="OTLP headers (e.g., 'api-key=xxx')"
    )
    otel_traces_enabled: bool = Field(default=True, description="Enable trace collection")
    otel_metrics_enabled: bool = Field(default=True, description="Enable metrics collection")

    @model_validator(mode="after")
    def validate_ttl_ordering(self) -> "Settings":
        """Embedding TTL must be at least the feedback TTL."""
        if self.embedding_cache_ttl < self.feedback_cache_ttl:
            raise ValueError(
                f"EMBEDDING_CACHE_TTL ({self.embedding_cache_ttl}s) must be >= "
                f"FEEDBACK_CACHE_TTL ({self.feedback_cache_ttl}s)"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
