"""Context compression: importance scoring + token-budget compressor."""

from __future__ import annotations

from typing import TYPE_CHECKING

from budgetcache.context.compression.budget import SUMMARY_PREFIX, ContextCompressor, build_summary
from budgetcache.context.compression.importance import ImportanceScorer
from budgetcache.context.tokens import TokenEstimator

if TYPE_CHECKING:
    from budgetcache.core.config import AppSettings

__all__ = [
    "create_compressor",
    "ContextCompressor",
    "ImportanceScorer",
    "SUMMARY_PREFIX",
    "build_summary",
]


def create_compressor(settings: AppSettings | None = None) -> ContextCompressor:
    """Create a compressor from settings.

    Args:
        settings: An ``AppSettings`` instance. If None, uses defaults.
    """
    if settings is None:
        return ContextCompressor()

    tok = settings.tokenizer
    cfg = settings.compression
    estimator = TokenEstimator(
        method=tok.method,
        model=tok.model,
        chars_per_token=tok.chars_per_token,
        fallback_encoding=tok.fallback_encoding,
    )
    return ContextCompressor(
        estimator,
        ImportanceScorer(),
        default_budget=cfg.token_budget,
        recent_window=cfg.recent_window,
        summary_head=cfg.summary_head,
        summary_tail=cfg.summary_tail,
        metrics_max_entries=cfg.metrics_max_entries,
    )
