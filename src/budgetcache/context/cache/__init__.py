"""Response caching: exact tier, strategy-gated semantic tier, and factories."""

from __future__ import annotations

from typing import TYPE_CHECKING

from budgetcache.context.cache.response import ExactResponseCache
from budgetcache.context.cache.semantic import StrategyCache
from budgetcache.context.cache.strategies import (
    RequestClassifier,
    default_strategies,
    detect_request_types,
)
from budgetcache.context.tokens import TokenEstimator
from budgetcache.persistence import create_backend

if TYPE_CHECKING:
    from budgetcache.core.config import AppSettings
    from budgetcache.persistence.protocols import IPersistenceBackend

__all__ = [
    "create_response_cache",
    "create_strategy_cache",
    "ExactResponseCache",
    "StrategyCache",
    "RequestClassifier",
    "default_strategies",
    "detect_request_types",
]


def create_response_cache(
    settings: AppSettings | None = None,
    *,
    backend: IPersistenceBackend | None = None,
) -> ExactResponseCache:
    """Create the exact response cache from settings.

    Args:
        settings: An ``AppSettings`` instance. If None, returns a memory-only
            cache with defaults.
        backend: Overrides the backend named in settings.
    """
    if settings is None:
        return ExactResponseCache(backend)

    cfg = settings.response_cache
    if backend is None:
        backend = create_backend(cfg)

    tok = settings.tokenizer
    return ExactResponseCache(
        backend,
        cache_key=cfg.cache_key,
        estimator=TokenEstimator(
            method=tok.method,
            model=tok.model,
            chars_per_token=tok.chars_per_token,
            fallback_encoding=tok.fallback_encoding,
        ),
        max_entries=cfg.max_entries,
        similarity_threshold=cfg.similarity_threshold,
        max_age_seconds=cfg.max_age_seconds,
        save_every=cfg.save_every,
        signature_size=cfg.signature_size,
        min_tag_overlap=cfg.min_tag_overlap,
        prompt_preview_chars=cfg.prompt_preview_chars,
        response_preview_chars=cfg.response_preview_chars,
    )


def create_strategy_cache(
    settings: AppSettings | None = None,
    *,
    classifier: RequestClassifier = detect_request_types,
) -> StrategyCache:
    """Create the strategy-gated cache with a fresh default strategy table."""
    if settings is None:
        return StrategyCache(classifier=classifier)

    cfg = settings.strategy_cache
    cache = StrategyCache(
        default_strategies(),
        classifier=classifier,
        eviction_fraction=cfg.eviction_fraction,
        content_weight=cfg.content_weight,
    )
    for strategy_id in cfg.disabled_strategies:
        cache.set_strategy_enabled(strategy_id, False)
    return cache
