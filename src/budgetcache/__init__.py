"""budgetcache: keep LLM conversations inside a token budget and skip redundant model calls.

Typical use from a conversational loop::

    from budgetcache import AppSettings, create_engine

    engine = create_engine(AppSettings())
    result = engine.optimize(messages)
    hit = await engine.lookup(prompt, context)
    if hit is None:
        response = await call_model(result.optimized_messages)
        await engine.store(prompt, response, context)
"""

from __future__ import annotations

from budgetcache.context.cache import ExactResponseCache, StrategyCache
from budgetcache.context.compression import ContextCompressor, ImportanceScorer
from budgetcache.context.engine import ConversationEngine, create_engine
from budgetcache.context.models import (
    CacheDecision,
    CacheEntry,
    CacheLookup,
    Condition,
    OptimizationMetrics,
    OptimizationResult,
    Strategy,
    StrategyEntry,
)
from budgetcache.context.tokens import TokenEstimator
from budgetcache.core.config import AppSettings
from budgetcache.exceptions import (
    BudgetCacheError,
    ConfigurationError,
    PersistenceError,
    TokenizerError,
    UnknownStrategyError,
)

__all__ = [
    "AppSettings",
    "ConversationEngine",
    "create_engine",
    "ContextCompressor",
    "ImportanceScorer",
    "TokenEstimator",
    "ExactResponseCache",
    "StrategyCache",
    "CacheDecision",
    "CacheEntry",
    "CacheLookup",
    "Condition",
    "OptimizationMetrics",
    "OptimizationResult",
    "Strategy",
    "StrategyEntry",
    "BudgetCacheError",
    "ConfigurationError",
    "PersistenceError",
    "TokenizerError",
    "UnknownStrategyError",
]
