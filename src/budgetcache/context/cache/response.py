"""Exact prompt → response cache with a signature-word semantic fallback.

Lookups first try the SHA-256 key of ``prompt + context``. On a miss, every
unexpired entry whose tags overlap enough is compared by Jaccard similarity
between its signature words and the query's significant tokens; the best
match at or above the threshold is served.

The whole store is persisted as one JSON document (an ordered array of
``CacheEntry`` records) through an ``IPersistenceBackend``. Persistence is
best-effort: unreadable data means an empty cache, and a failed write
switches the instance to memory-only mode.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from budgetcache.context.cache.key_strategy import compute_exact_key, compute_response_hash
from budgetcache.context.models import CacheEntry
from budgetcache.context.text import jaccard, significant_tokens, signature_words
from budgetcache.context.tokens import TokenEstimator
from budgetcache.exceptions import PersistenceError
from budgetcache.persistence.protocols import IPersistenceBackend

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class ExactResponseCache:
    """Two-path response cache: O(1) exact hits, scanned near-duplicate hits.

    Not thread-safe; callers are expected to use it from a single task.
    """

    def __init__(
        self,
        backend: IPersistenceBackend | None = None,
        *,
        cache_key: str = "token-cache",
        estimator: TokenEstimator | None = None,
        max_entries: int = 1000,
        similarity_threshold: float = 0.85,
        max_age_seconds: float = 7 * SECONDS_PER_DAY,
        save_every: int = 10,
        signature_size: int = 20,
        min_tag_overlap: float = 0.3,
        prompt_preview_chars: int = 200,
        response_preview_chars: int = 800,
    ) -> None:
        self._backend = backend
        self._cache_key = cache_key
        self._estimator = estimator or TokenEstimator()
        self._max_entries = max_entries
        self._similarity_threshold = similarity_threshold
        self._max_age = max_age_seconds
        self._save_every = save_every
        self._signature_size = signature_size
        self._min_tag_overlap = min_tag_overlap
        self._prompt_preview_chars = prompt_preview_chars
        self._response_preview_chars = response_preview_chars

        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._loaded = False
        self._memory_only = backend is None
        self._inserts = 0

    @property
    def memory_only(self) -> bool:
        """True when nothing will be written to the backend."""
        return self._memory_only

    def __len__(self) -> int:
        return len(self._store)

    # ── Lookup / store ───────────────────────────────────────────────

    async def get(
        self,
        prompt: str,
        context: str = "",
        tags: Sequence[str] = (),
    ) -> CacheEntry | None:
        """Return a copy of the best cached entry for *prompt*, or None on miss.

        The returned copy carries the match ``similarity`` (1.0 for exact).
        """
        await self._ensure_loaded()
        now = datetime.now(timezone.utc)

        key = compute_exact_key(prompt, context)
        entry = self._store.get(key)
        if entry is not None:
            if entry.age_seconds(now) <= self._max_age:
                entry.hit_count += 1
                log.debug(f"Cache HIT (exact): saved ~{entry.tokens_saved} tokens")
                return entry.model_copy(update={"similarity": 1.0})
            del self._store[key]

        query_tokens = set(significant_tokens(prompt))
        if not query_tokens:
            return None

        best: CacheEntry | None = None
        best_similarity = 0.0
        for candidate in self._store.values():
            if candidate.age_seconds(now) > self._max_age:
                continue
            if not self._tags_compatible(tags, candidate.tags):
                continue
            similarity = jaccard(candidate.signature_words, query_tokens)
            if similarity >= self._similarity_threshold and similarity > best_similarity:
                best = candidate
                best_similarity = similarity

        if best is None:
            return None

        best.hit_count += 1
        log.debug(
            f"Cache HIT (similar {round(best_similarity * 100)}%): "
            f"saved ~{best.tokens_saved} tokens"
        )
        return best.model_copy(update={"similarity": best_similarity})

    async def set(
        self,
        prompt: str,
        response: str,
        context: str = "",
        tokens_saved: int = 0,
        tags: Sequence[str] = (),
    ) -> CacheEntry:
        """Store *response* for *prompt*, evicting and periodically saving."""
        await self._ensure_loaded()

        key = compute_exact_key(prompt, context)
        entry = CacheEntry(
            key=key,
            signature_words=signature_words(prompt, self._signature_size),
            prompt_preview=prompt[: self._prompt_preview_chars],
            response=response,
            response_preview=response[: self._response_preview_chars],
            response_hash=compute_response_hash(response),
            tokens_saved=max(tokens_saved, self._estimator.estimate(prompt + response)),
            tags=list(tags),
        )
        self._store.pop(key, None)
        self._store[key] = entry

        self._evict()

        self._inserts += 1
        if self._inserts % self._save_every == 0:
            await self.save()

        return entry

    def _tags_compatible(self, query_tags: Sequence[str], entry_tags: Sequence[str]) -> bool:
        if not query_tags or not entry_tags:
            return True
        overlap = len(set(query_tags) & set(entry_tags))
        return overlap / max(len(set(query_tags)), len(set(entry_tags))) >= self._min_tag_overlap

    def _evict(self) -> int:
        """Drop the lowest-scoring entries until the store fits ``max_entries``."""
        excess = len(self._store) - self._max_entries
        if excess <= 0:
            return 0

        now = datetime.now(timezone.utc)

        def score(entry: CacheEntry) -> float:
            age_hours = entry.age_seconds(now) / 3600
            return entry.hit_count * 0.7 - age_hours * 0.3

        victims = sorted(self._store.values(), key=score)[:excess]
        for entry in victims:
            del self._store[entry.key]
        log.info(f"Cleaned up {len(victims)} old cache entries")
        return len(victims)

    # ── Persistence ──────────────────────────────────────────────────

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def load(self) -> int:
        """Re-hydrate the store from the backend. Never raises.

        Returns the number of entries loaded.
        """
        self._loaded = True
        if self._backend is None:
            return 0

        try:
            raw = await asyncio.to_thread(self._backend.load, self._cache_key)
        except KeyError:
            log.debug("Starting with empty response cache")
            return 0
        except (OSError, UnicodeDecodeError, PersistenceError) as e:
            log.debug(f"Unreadable response cache, starting empty: {e}")
            return 0

        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            log.debug(f"Malformed response cache, starting empty: {e}")
            return 0
        if not isinstance(records, list):
            log.debug("Response cache document is not an array, starting empty")
            return 0

        loaded = 0
        for record in records:
            try:
                entry = CacheEntry.model_validate(record)
            except ValidationError:
                continue
            self._store[entry.key] = entry
            loaded += 1

        self._evict()
        log.debug(f"Loaded {loaded} cached responses")
        return loaded

    async def save(self) -> bool:
        """Rewrite the persisted document. Returns False when not written."""
        if self._memory_only or self._backend is None:
            return False
        data = self._serialize(indent=2)
        try:
            await asyncio.to_thread(self._backend.save, self._cache_key, data)
        except (OSError, PersistenceError) as e:
            log.warning(f"Failed to save response cache, continuing in memory only: {e}")
            self._memory_only = True
            return False
        log.debug(f"Saved {len(self._store)} cache entries")
        return True

    def _serialize(self, indent: int | None = None) -> str:
        return json.dumps([e.model_dump(mode="json") for e in self._store.values()], indent=indent)

    # ── Maintenance ──────────────────────────────────────────────────

    async def clear(self) -> int:
        """Remove every entry and the persisted document. Returns the count removed."""
        await self._ensure_loaded()
        removed = len(self._store)
        self._store.clear()
        if self._backend is not None:
            try:
                await asyncio.to_thread(self._backend.delete, self._cache_key)
            except (OSError, PersistenceError) as e:
                log.debug(f"Could not delete persisted response cache: {e}")
        log.info(f"Cleared {removed} cache entries")
        return removed

    async def cleanup_expired(self) -> int:
        """Remove entries older than ``max_age``; saves when anything was removed."""
        await self._ensure_loaded()
        now = datetime.now(timezone.utc)
        expired = [k for k, e in self._store.items() if e.age_seconds(now) > self._max_age]
        for key in expired:
            del self._store[key]
        if expired:
            log.info(f"Removed {len(expired)} expired cache entries")
            await self.save()
        return len(expired)

    def find_similar(self, prompt: str, limit: int = 5) -> list[CacheEntry]:
        """Entries with similarity above 0.5 to *prompt*, best first (for analysis)."""
        query_tokens = set(significant_tokens(prompt))
        if not query_tokens:
            return []
        scored = [
            e.model_copy(update={"similarity": jaccard(e.signature_words, query_tokens)})
            for e in self._store.values()
        ]
        scored = [e for e in scored if e.similarity > 0.5]
        scored.sort(key=lambda e: e.similarity, reverse=True)
        return scored[:limit]

    def update_settings(
        self,
        max_size: int | None = None,
        similarity_threshold: float | None = None,
        max_age_seconds: float | None = None,
    ) -> None:
        if max_size is not None:
            self._max_entries = max_size
        if similarity_threshold is not None:
            self._similarity_threshold = similarity_threshold
        if max_age_seconds is not None:
            self._max_age = max_age_seconds
        self._evict()
        log.info("Response cache settings updated")

    async def export(self, path: Path) -> Path:
        """Write metadata plus all entries to *path*.

        Unlike background saves, an explicit export reports failure by raising
        ``PersistenceError``.
        """
        await self._ensure_loaded()
        document: dict[str, Any] = {
            "metadata": {
                "export_date": datetime.now(timezone.utc).isoformat(),
                "total_entries": len(self._store),
                "settings": {
                    "max_cache_size": self._max_entries,
                    "similarity_threshold": self._similarity_threshold,
                    "max_cache_age": self._max_age,
                },
            },
            "entries": [e.model_dump(mode="json") for e in self._store.values()],
        }
        path = Path(path)
        try:
            await asyncio.to_thread(path.write_text, json.dumps(document, indent=2), "utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to export response cache to {path}: {e}") from e
        log.info(f"Cache exported to {path}")
        return path

    def get_stats(self) -> dict[str, Any]:
        entries = list(self._store.values())
        total_hits = sum(e.hit_count for e in entries)
        return {
            "total_entries": len(entries),
            "total_hits": total_hits,
            "total_tokens_saved": sum(e.tokens_saved * e.hit_count for e in entries),
            "hit_ratio": total_hits / (total_hits + len(entries)) if entries else 0.0,
            "cache_size": len(self._serialize()),
            "memory_only": self._memory_only,
        }
