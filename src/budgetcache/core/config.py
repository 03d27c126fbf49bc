"""Nested pydantic-settings configuration for the engine.

Each group reads its own ``BCACHE_<GROUP>_*`` env vars and is aggregated by
``AppSettings``::

    export BCACHE_COMPRESSION_TOKEN_BUDGET=120000
    export BCACHE_RESPONSE_CACHE_BACKEND=memory
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class CompressionConfig(BaseSettings):
    """Context compression configuration.

    Env vars use ``BCACHE_COMPRESSION_`` prefix.
    """

    model_config = {"env_prefix": "BCACHE_COMPRESSION_"}

    token_budget: int = Field(default=180_000, gt=0)
    recent_window: int = Field(default=4, ge=0)
    summary_head: int = Field(default=2, ge=0)
    summary_tail: int = Field(default=3, ge=0)
    metrics_max_entries: int = Field(default=1000, gt=0)


class TokenizerConfig(BaseSettings):
    """Token estimation configuration.

    Env vars use ``BCACHE_TOKENIZER_`` prefix.
    """

    model_config = {"env_prefix": "BCACHE_TOKENIZER_"}

    method: Literal["approximate", "tiktoken"] = "approximate"
    model: str = "gpt-4o"
    chars_per_token: int = Field(default=4, gt=0)
    fallback_encoding: str = "cl100k_base"


class ResponseCacheConfig(BaseSettings):
    """Exact/semantic response cache configuration.

    Env vars use ``BCACHE_RESPONSE_CACHE_`` prefix::

        export BCACHE_RESPONSE_CACHE_SIMILARITY_THRESHOLD=0.9
        export BCACHE_RESPONSE_CACHE_CACHE_DIR=~/.budgetcache
    """

    model_config = {"env_prefix": "BCACHE_RESPONSE_CACHE_"}

    enabled: bool = True
    backend: Literal["file", "memory"] = "file"
    cache_dir: Path = Path("./.budgetcache")
    cache_key: str = "token-cache"
    max_entries: int = Field(default=1000, gt=0)
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_age_seconds: float = Field(default=7 * 24 * 60 * 60, gt=0)
    save_every: int = Field(default=10, gt=0)
    signature_size: int = Field(default=20, gt=0)
    min_tag_overlap: float = Field(default=0.3, ge=0.0, le=1.0)
    prompt_preview_chars: int = 200
    response_preview_chars: int = 800


class StrategyCacheConfig(BaseSettings):
    """Strategy-gated semantic cache configuration.

    Env vars use ``BCACHE_STRATEGY_CACHE_`` prefix.
    """

    model_config = {"env_prefix": "BCACHE_STRATEGY_CACHE_"}

    enabled: bool = True
    eviction_fraction: float = Field(default=0.2, gt=0.0, le=1.0)
    content_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    disabled_strategies: list[str] = Field(default_factory=list)


class ObservabilityConfig(BaseSettings):
    """Logging configuration.

    Env vars use ``BCACHE_OBSERVABILITY_`` prefix.
    """

    model_config = {"env_prefix": "BCACHE_OBSERVABILITY_"}

    log_level: str = "INFO"
    json_logs: bool | None = None


class AppSettings(BaseSettings):
    """Top-level settings aggregating all sub-configs."""

    compression: CompressionConfig = CompressionConfig()
    tokenizer: TokenizerConfig = TokenizerConfig()
    response_cache: ResponseCacheConfig = ResponseCacheConfig()
    strategy_cache: StrategyCacheConfig = StrategyCacheConfig()
    observability: ObservabilityConfig = ObservabilityConfig()
