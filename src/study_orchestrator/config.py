"""Configuration models for the orchestration core."""

from __future__ import annotations

import os
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .env_config import get_env


class CacheConfig(BaseModel):
    """Budgets for one bounded cache instance."""

    max_entries: int = Field(1000, gt=0)
    max_bytes: int | None = Field(None, gt=0)  # None = no byte ceiling
    ttl_seconds: float = Field(3600.0, gt=0)
    sweep_interval_seconds: float = Field(300.0, gt=0)


class EmbeddingCacheConfig(CacheConfig):
    """Vectors are small and fixed-size, so only the entry count is bounded."""

    max_entries: int = Field(1000, gt=0)
    max_bytes: int | None = None
    ttl_seconds: float = Field(60 * 60.0, gt=0)
    sweep_interval_seconds: float = Field(5 * 60.0, gt=0)


class ContentCacheConfig(CacheConfig):
    """File content varies widely in size, so a byte ceiling applies."""

    max_entries: int = Field(500, gt=0)
    max_bytes: int | None = Field(50 * 1024 * 1024, gt=0)
    ttl_seconds: float = Field(30 * 60.0, gt=0)
    sweep_interval_seconds: float = Field(10 * 60.0, gt=0)


class ProviderKind(str, Enum):
    OPENAI_COMPATIBLE = "openai_compatible"
    STATIC = "static"


class ProviderConfig(BaseModel):
    """Immutable descriptor for one completion provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ProviderKind = ProviderKind.OPENAI_COMPATIBLE
    tier: int = Field(1, ge=1)
    models: tuple[str, ...] = ()
    requests_per_minute: int | None = Field(None, gt=0)
    requests_per_day: int | None = Field(None, gt=0)
    requests_per_month: int | None = Field(None, gt=0)
    timeout_seconds: float = Field(30.0, gt=0)
    priority_weight: float = 1.0
    base_url: str | None = None
    api_key: str | None = None
    api_key_env: str | None = None
    enabled: bool = True

    @property
    def default_model(self) -> str | None:
        return self.models[0] if self.models else None

    def resolved_api_key(self) -> str | None:
        """Explicit key first, then the named env var, then ``<NAME>_API_KEY``."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return get_env(self.api_key_env) or None
        return get_env(f"{self.name.upper()}_API_KEY") or None


class OrchestratorConfig(BaseModel):
    """Tiered fallback configuration."""

    providers: list[ProviderConfig] = Field(default_factory=list)
    request_deadline_seconds: float = Field(60.0, gt=0)
    failure_threshold: int = Field(3, ge=1)  # consecutive failures -> degraded
    circuit_breaker_threshold: int = Field(5, ge=1)  # -> unavailable
    circuit_cooldown_seconds: float = Field(300.0, gt=0)
    retry_after_seconds: float = Field(30.0, ge=0)

    @model_validator(mode="after")
    def _validate_providers(self) -> "OrchestratorConfig":
        names = [p.name for p in self.providers]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate provider names: {sorted(duplicates)}")
        if self.circuit_breaker_threshold < self.failure_threshold:
            raise ValueError(
                "circuit_breaker_threshold must be >= failure_threshold"
            )
        return self


class RetentionConfig(BaseModel):
    """Days until expiry per retention class. Permanent never expires."""

    short_days: float = 7.0
    long_term_days: float = 30.0


class MemoryConfig(BaseModel):
    """Dual-layer memory configuration."""

    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    default_limit: int = Field(5, gt=0)
    default_min_similarity: float = Field(0.7, ge=-1.0, le=1.0)
    default_context_level: str = Field(
        "balanced", pattern="^(light|balanced|comprehensive)$"
    )
    expiry_sweep_interval_seconds: float = Field(60 * 60.0, gt=0)
    backfill_interval_seconds: float = Field(5 * 60.0, gt=0)
    backfill_batch_size: int = Field(32, gt=0)


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    sqlite_db_path: str = "./data/memory.db"

    @model_validator(mode="after")
    def _validate_paths(self) -> "StorageConfig":
        if self.sqlite_db_path == ":memory:":
            return self
        normalized = os.path.normpath(self.sqlite_db_path)
        parts = normalized.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValueError(
                f"sqlite_db_path must not contain '..' components: "
                f"{self.sqlite_db_path!r}"
            )
        self.sqlite_db_path = normalized
        return self


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: str = Field("local", pattern="^(local|openai_compatible)$")
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int = 384
    base_url: str | None = None
    api_key_env: str | None = None
    trust_remote_code: bool = False


class ContentSourceConfig(BaseModel):
    """HTTP object storage holding study files.

    Objects are read with ``GET {base_url}/{path}``, which fits an R2 or S3
    public bucket endpoint or a signing gateway in front of a private one.
    Without ``base_url`` no content source is built.
    """

    base_url: str | None = None
    token_env: str | None = None
    timeout_seconds: float = Field(10.0, gt=0)
    max_file_bytes: int = Field(5 * 1024 * 1024, gt=0)

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def resolved_token(self) -> str | None:
        if not self.token_env:
            return None
        return get_env(self.token_env) or None


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_file: str | None = None


class AppConfig(BaseModel):
    """Top-level configuration."""

    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    embedding_cache: EmbeddingCacheConfig = Field(default_factory=EmbeddingCacheConfig)
    content_cache: ContentCacheConfig = Field(default_factory=ContentCacheConfig)
    content_source: ContentSourceConfig = Field(default_factory=ContentSourceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
