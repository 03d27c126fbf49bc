"""Strategy-gated semantic cache.

Each request is gated against an owned registry of strategies; only a
request that satisfies every condition of an enabled strategy may be stored
or served, and it is only ever matched against entries of that same
strategy. Matching blends word-set Jaccard similarity of the content and of
the context.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any

from budgetcache.context.cache.key_strategy import generate_entry_id
from budgetcache.context.cache.strategies import (
    RequestClassifier,
    default_strategies,
    detect_request_types,
    matches_strategy,
)
from budgetcache.context.models import CacheDecision, Strategy, StrategyEntry
from budgetcache.context.text import jaccard, normalize_text, word_set
from budgetcache.exceptions import ConfigurationError, UnknownStrategyError

log = logging.getLogger(__name__)


class StrategyCache:
    """Near-duplicate response cache partitioned by caching strategy.

    Args:
        strategies: Strategy table keyed by id, evaluated in insertion order.
            Defaults to a fresh ``default_strategies()``.
        classifier: Request classifier used by ``request_type`` conditions.
        eviction_fraction: Share of a full strategy's entries dropped, oldest
            access first, before a new insertion.
        content_weight: Weight of content similarity; context gets the rest.
    """

    def __init__(
        self,
        strategies: dict[str, Strategy] | None = None,
        *,
        classifier: RequestClassifier = detect_request_types,
        eviction_fraction: float = 0.2,
        content_weight: float = 0.7,
    ) -> None:
        if not 0.0 < eviction_fraction <= 1.0:
            raise ConfigurationError(
                f"eviction_fraction must be in (0, 1], got {eviction_fraction}"
            )
        self._strategies = strategies if strategies is not None else default_strategies()
        self._classifier = classifier
        self._eviction_fraction = eviction_fraction
        self._content_weight = content_weight
        self._entries: dict[str, StrategyEntry] = {}
        self._frequencies: dict[str, int] = {}
        self._tokens_saved_total = 0

    @property
    def strategies(self) -> dict[str, Strategy]:
        return self._strategies

    def __len__(self) -> int:
        return len(self._entries)

    # ── Gating ───────────────────────────────────────────────────────

    def should_cache(self, content: str, context: str = "") -> CacheDecision:
        """Pick the first enabled strategy whose conditions all hold."""
        normalized = _normalize(content)
        for strategy_id, strategy in self._strategies.items():
            if not strategy.enabled:
                continue
            if matches_strategy(
                strategy,
                normalized,
                classifier=self._classifier,
                frequencies=self._frequencies,
            ):
                return CacheDecision(
                    should=True,
                    strategy_id=strategy_id,
                    reason=f"Matches {strategy.name} strategy",
                )
        return CacheDecision(should=False, reason="No matching cache strategy")

    def record_request(self, content: str) -> int:
        """Count one occurrence of *content*; returns the new count."""
        normalized = _normalize(content)
        count = self._frequencies.get(normalized, 0) + 1
        self._frequencies[normalized] = count
        return count

    # ── Lookup / store ───────────────────────────────────────────────

    async def get_cached_response(self, content: str, context: str = "") -> StrategyEntry | None:
        """Serve the best same-strategy, unexpired entry above the threshold."""
        self.record_request(content)
        decision = self.should_cache(content, context)
        if not decision.should or decision.strategy_id is None:
            return None
        strategy = self._strategies[decision.strategy_id]

        now = time.time()
        content_words = word_set(_normalize(content))
        context_words = word_set(_normalize(context))

        best: StrategyEntry | None = None
        best_score = -1.0
        for entry in self._entries.values():
            if entry.strategy != decision.strategy_id:
                continue
            if now - entry.timestamp > strategy.max_age:
                continue
            score = self._similarity(content_words, context_words, entry)
            if score >= strategy.similarity_threshold and score > best_score:
                best = entry
                best_score = score

        if best is None:
            return None

        best.last_accessed = now
        best.access_count += 1
        self._tokens_saved_total += best.tokens_saved
        log.debug(
            f"Strategy cache HIT ({decision.strategy_id}, {round(best_score * 100)}%): "
            f"saved ~{best.tokens_saved} tokens"
        )
        return best

    async def set_cached_response(
        self,
        content: str,
        response: str,
        context: str = "",
        tokens_saved: int = 0,
        response_time: float = 0.0,
    ) -> StrategyEntry | None:
        """Store *response* under the gating strategy. Returns None when not eligible."""
        decision = self.should_cache(content, context)
        if not decision.should or decision.strategy_id is None:
            return None
        strategy = self._strategies[decision.strategy_id]
        if strategy.max_size <= 0:
            return None

        if self._count(decision.strategy_id) >= strategy.max_size:
            self._evict(decision.strategy_id, strategy.max_size)

        now = time.time()
        entry = StrategyEntry(
            id=generate_entry_id(),
            content=content,
            context=context,
            response=response,
            strategy=decision.strategy_id,
            timestamp=now,
            last_accessed=now,
            access_count=1,
            tags=list(strategy.tags),
            metadata={"tokens_saved": tokens_saved, "response_time": response_time},
        )
        self._entries[entry.id] = entry
        return entry

    def _similarity(
        self,
        content_words: set[str],
        context_words: set[str],
        entry: StrategyEntry,
    ) -> float:
        content_sim = jaccard(content_words, word_set(_normalize(entry.content)))
        context_sim = jaccard(context_words, word_set(_normalize(entry.context)))
        return self._content_weight * content_sim + (1 - self._content_weight) * context_sim

    def _count(self, strategy_id: str) -> int:
        return sum(1 for e in self._entries.values() if e.strategy == strategy_id)

    def _evict(self, strategy_id: str, max_size: int) -> int:
        """Drop the least recently accessed share of one strategy's entries.

        Removes at least enough to leave room for one insertion under
        *max_size*, even when the limit was lowered after entries were stored.
        """
        entries = sorted(
            (e for e in self._entries.values() if e.strategy == strategy_id),
            key=lambda e: e.last_accessed,
        )
        to_remove = max(
            math.ceil(len(entries) * self._eviction_fraction),
            len(entries) - max_size + 1,
        )
        for entry in entries[:to_remove]:
            del self._entries[entry.id]
        if to_remove:
            log.debug(f"Evicted {to_remove} entries from strategy {strategy_id}")
        return to_remove

    # ── Maintenance ──────────────────────────────────────────────────

    def cleanup(self) -> int:
        """Remove entries older than their strategy's ``max_age``."""
        now = time.time()
        expired = [
            entry_id
            for entry_id, entry in self._entries.items()
            if entry.strategy in self._strategies
            and now - entry.timestamp > self._strategies[entry.strategy].max_age
        ]
        for entry_id in expired:
            del self._entries[entry_id]
        if expired:
            log.info(f"Removed {len(expired)} expired strategy cache entries")
        return len(expired)

    def set_strategy_enabled(self, strategy_id: str, enabled: bool) -> None:
        """Toggle a strategy; its entries stay stored but become unreachable."""
        if strategy_id not in self._strategies:
            raise UnknownStrategyError(strategy_id)
        self._strategies[strategy_id].enabled = enabled
        log.info(f"Strategy {strategy_id} {'enabled' if enabled else 'disabled'}")

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        self._frequencies.clear()
        return removed

    def get_cache_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {}
        for strategy_id, strategy in self._strategies.items():
            entries = [e for e in self._entries.values() if e.strategy == strategy_id]
            stats[strategy_id] = {
                "name": strategy.name,
                "enabled": strategy.enabled,
                "entries": len(entries),
                "total_accesses": sum(e.access_count for e in entries),
                "avg_tokens_saved": (
                    sum(e.tokens_saved for e in entries) / len(entries) if entries else 0.0
                ),
            }
        return {"strategies": stats, "tokens_saved_total": self._tokens_saved_total}


def _normalize(text: str) -> str:
    return normalize_text(text, strip_punctuation=False)
