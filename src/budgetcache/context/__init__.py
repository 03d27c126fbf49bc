"""Context budgeting and response caching.

Components, leaves first: token estimation, importance scoring, the
token-budget compressor, the exact response cache, and the strategy-gated
semantic cache, tied together by ``ConversationEngine``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from budgetcache.context.models import (
    CacheDecision,
    CacheEntry,
    CacheLookup,
    Condition,
    MessageMetric,
    OptimizationMetrics,
    OptimizationResult,
    Strategy,
    StrategyEntry,
)

if TYPE_CHECKING:
    from budgetcache.context.engine import ConversationEngine

__all__ = [
    "CacheDecision",
    "CacheEntry",
    "CacheLookup",
    "Condition",
    "MessageMetric",
    "OptimizationMetrics",
    "OptimizationResult",
    "Strategy",
    "StrategyEntry",
    "create_engine",
]


def create_engine(settings: object | None = None, **kwargs: object) -> ConversationEngine:
    """Factory: create a conversation engine from settings.

    Lazy import to avoid circular deps at module load time.
    """
    from budgetcache.context.engine import create_engine as _factory

    return _factory(settings, **kwargs)  # type: ignore[arg-type]
