"""Conversation engine: one owned instance of compressor + both cache tiers.

The conversational loop calls ``optimize`` before each model invocation,
``lookup`` for a cached answer, and on a miss ``store`` after the model
replies. Every piece of state lives on the engine, so independent engines
can coexist (one per session, one per test).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from budgetcache.context.cache import (
    ExactResponseCache,
    RequestClassifier,
    StrategyCache,
    create_response_cache,
    create_strategy_cache,
    detect_request_types,
)
from budgetcache.context.cache.key_strategy import compute_exact_key
from budgetcache.context.compression import ContextCompressor, create_compressor
from budgetcache.context.models import CacheLookup, OptimizationResult
from budgetcache.core.types import JsonDict, MessageList

if TYPE_CHECKING:
    from budgetcache.core.config import AppSettings
    from budgetcache.persistence.protocols import IPersistenceBackend

log = logging.getLogger(__name__)


class ConversationEngine:
    """Budget and cache front door for a single conversation loop.

    Either cache tier may be None to run without it.
    """

    def __init__(
        self,
        compressor: ContextCompressor,
        response_cache: ExactResponseCache | None = None,
        strategy_cache: StrategyCache | None = None,
    ) -> None:
        self.compressor = compressor
        self.response_cache = response_cache
        self.strategy_cache = strategy_cache

    def optimize(
        self,
        messages: MessageList,
        token_budget: int | None = None,
    ) -> OptimizationResult:
        return self.compressor.optimize(messages, token_budget)

    async def lookup(
        self,
        prompt: str,
        context: str = "",
        tags: Sequence[str] = (),
    ) -> CacheLookup | None:
        """Find a cached answer: exact tier first, then the strategy tier."""
        if self.response_cache is not None:
            exact_key = compute_exact_key(prompt, context)
            entry = await self.response_cache.get(prompt, context, tags)
            if entry is not None:
                return CacheLookup(
                    response=entry.response,
                    source="exact" if entry.key == exact_key else "semantic",
                    similarity=entry.similarity,
                    tokens_saved=entry.tokens_saved,
                )

        if self.strategy_cache is not None:
            hit = await self.strategy_cache.get_cached_response(prompt, context)
            if hit is not None:
                return CacheLookup(
                    response=hit.response,
                    source="strategy",
                    similarity=1.0,
                    tokens_saved=hit.tokens_saved,
                )

        log.debug("Cache MISS")
        return None

    async def store(
        self,
        prompt: str,
        response: str,
        context: str = "",
        tags: Sequence[str] = (),
        tokens_saved: int = 0,
        response_time: float = 0.0,
    ) -> None:
        """Record a fresh model response in every tier that accepts it."""
        if self.response_cache is not None:
            await self.response_cache.set(prompt, response, context, tokens_saved, tags)
        if self.strategy_cache is not None:
            await self.strategy_cache.set_cached_response(
                prompt, response, context, tokens_saved, response_time
            )

    async def cleanup(self) -> dict[str, int]:
        """Run the on-demand expiry sweeps of both tiers."""
        removed = {"response_cache": 0, "strategy_cache": 0}
        if self.response_cache is not None:
            removed["response_cache"] = await self.response_cache.cleanup_expired()
        if self.strategy_cache is not None:
            removed["strategy_cache"] = self.strategy_cache.cleanup()
        return removed

    async def flush(self) -> bool:
        """Persist the exact tier now instead of waiting for the next periodic save."""
        if self.response_cache is None:
            return False
        return await self.response_cache.save()

    def get_stats(self) -> JsonDict:
        return {
            "compressor": self.compressor.get_stats(),
            "response_cache": (
                self.response_cache.get_stats() if self.response_cache is not None else None
            ),
            "strategy_cache": (
                self.strategy_cache.get_cache_stats()
                if self.strategy_cache is not None
                else None
            ),
        }


def create_engine(
    settings: AppSettings | None = None,
    *,
    backend: IPersistenceBackend | None = None,
    classifier: RequestClassifier = detect_request_types,
) -> ConversationEngine:
    """Build an engine from settings.

    Args:
        settings: An ``AppSettings`` instance. If None, every component uses
            defaults and the exact tier stays memory-only.
        backend: Persistence backend override for the exact tier.
        classifier: Request classifier for the strategy tier.
    """
    if settings is None:
        return ConversationEngine(
            create_compressor(),
            create_response_cache(backend=backend),
            create_strategy_cache(classifier=classifier),
        )

    response_cache = (
        create_response_cache(settings, backend=backend)
        if settings.response_cache.enabled
        else None
    )
    strategy_cache = (
        create_strategy_cache(settings, classifier=classifier)
        if settings.strategy_cache.enabled
        else None
    )
    return ConversationEngine(create_compressor(settings), response_cache, strategy_cache)
