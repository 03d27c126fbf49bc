"""Tests for the exact response cache: exact hits, semantic fallback, persistence."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from budgetcache.context.cache.key_strategy import compute_exact_key
from budgetcache.context.cache.response import ExactResponseCache
from budgetcache.context.models import CacheEntry
from budgetcache.exceptions import PersistenceError
from budgetcache.persistence.file_backend import FilePersistenceBackend
from tests.fakes.fake_persistence import FailingPersistenceBackend, FakePersistenceBackend

PROMPT = "how do I configure the logging level for the python service"


def _age(cache: ExactResponseCache, prompt: str, days: float, context: str = "") -> None:
    entry = cache._store[compute_exact_key(prompt, context)]
    entry.timestamp = datetime.now(timezone.utc) - timedelta(days=days)


class TestExactTier:
    """Exact lookups should hit on the same prompt and context only."""

    async def test_round_trip(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set("p", "r", context="c")
        hit = await response_cache.get("p", context="c")
        assert hit is not None
        assert hit.response == "r"
        assert hit.similarity == 1.0
        assert hit.hit_count == 1

    async def test_miss_returns_none(self, response_cache: ExactResponseCache) -> None:
        assert await response_cache.get("never stored anything like this") is None

    async def test_hit_count_accumulates(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "answer")
        await response_cache.get(PROMPT)
        hit = await response_cache.get(PROMPT)
        assert hit is not None
        assert hit.hit_count == 2

    async def test_overwrite_same_key(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "v1")
        await response_cache.set(PROMPT, "v2")
        hit = await response_cache.get(PROMPT)
        assert hit is not None
        assert hit.response == "v2"
        assert len(response_cache) == 1

    async def test_expired_entry_not_served(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "old")
        _age(response_cache, PROMPT, days=8)
        assert await response_cache.get(PROMPT) is None
        assert len(response_cache) == 0

    async def test_tokens_saved_uses_estimate_floor(self, response_cache: ExactResponseCache) -> None:
        entry = await response_cache.set("a" * 40, "b" * 40, tokens_saved=5)
        assert entry.tokens_saved == 20
        entry = await response_cache.set("c" * 40, "d", tokens_saved=500)
        assert entry.tokens_saved == 500

    async def test_entry_fields(self, response_cache: ExactResponseCache) -> None:
        entry = await response_cache.set(PROMPT, "x" * 1000, tags=["python"])
        assert entry.key == compute_exact_key(PROMPT)
        assert len(entry.response_preview) == 800
        assert entry.prompt_preview == PROMPT
        assert entry.tags == ["python"]
        assert "the" in entry.signature_words
        assert len(entry.response_hash) == 16


class TestSemanticTier:
    """Near-duplicate prompts should hit above the similarity threshold."""

    async def test_near_duplicate_hits(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "set LOG_LEVEL")
        # 8 shared tokens out of 9 → 0.889
        hit = await response_cache.get(PROMPT + " please")
        assert hit is not None
        assert hit.response == "set LOG_LEVEL"
        assert abs(hit.similarity - 8 / 9) < 1e-9

    async def test_below_threshold_misses(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "set LOG_LEVEL")
        # 8 shared tokens out of 10 → 0.8
        assert await response_cache.get(PROMPT + " please today") is None

    async def test_expired_candidates_skipped(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "stale")
        _age(response_cache, PROMPT, days=7.5)
        assert await response_cache.get(PROMPT + " please") is None

    async def test_tag_overlap_filter(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "answer", tags=["python", "config"])
        assert await response_cache.get(PROMPT + " please", tags=["rust"]) is None
        assert await response_cache.get(PROMPT + " please", tags=["python"]) is not None
        assert await response_cache.get(PROMPT + " please") is not None

    async def test_best_match_wins(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT + " please", "close")
        await response_cache.set(PROMPT + " please now", "farther")
        hit = await response_cache.get(PROMPT + " please kindly")
        assert hit is not None
        assert hit.response == "close"

    async def test_prompt_without_significant_tokens(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set("ok", "fine")
        assert await response_cache.get("ok!") is None

    async def test_threshold_update(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "answer")
        response_cache.update_settings(similarity_threshold=1.0)
        assert await response_cache.get(PROMPT + " please") is None

    async def test_find_similar(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "a")
        await response_cache.set("completely unrelated words here", "b")
        similar = response_cache.find_similar(PROMPT + " please today")
        assert [e.response for e in similar] == ["a"]
        assert similar[0].similarity == 0.8


class TestEviction:
    """The store should stay within max_entries, dropping low-value entries."""

    async def test_capped_at_max_entries(self, backend: FakePersistenceBackend) -> None:
        cache = ExactResponseCache(backend, max_entries=3)
        await cache.set("alpha prompt text", "1")
        await cache.set("bravo prompt text", "2")
        await cache.set("charlie prompt text", "3")
        await cache.get("alpha prompt text")
        await cache.get("bravo prompt text")
        await cache.set("delta prompt text", "4")

        assert len(cache) == 3
        assert compute_exact_key("charlie prompt text") not in cache._store
        assert compute_exact_key("alpha prompt text") in cache._store

    async def test_shrinking_max_size_evicts(self, response_cache: ExactResponseCache) -> None:
        for i in range(5):
            await response_cache.set(f"prompt number {i} words", str(i))
        response_cache.update_settings(max_size=2)
        assert len(response_cache) == 2


class TestPersistence:
    """Saving and loading should be best-effort and never raise."""

    async def test_saves_every_tenth_insert(
        self, response_cache: ExactResponseCache, backend: FakePersistenceBackend
    ) -> None:
        for i in range(9):
            await response_cache.set(f"prompt {i}", "r")
        assert backend.save_calls == 0
        await response_cache.set("prompt 9", "r")
        assert backend.save_calls == 1

    async def test_reload_from_backend(self, backend: FakePersistenceBackend) -> None:
        first = ExactResponseCache(backend, save_every=1)
        await first.set(PROMPT, "persisted", tags=["python"])

        second = ExactResponseCache(backend)
        assert await second.load() == 1
        hit = await second.get(PROMPT)
        assert hit is not None
        assert hit.response == "persisted"
        assert isinstance(hit.timestamp, datetime)
        assert hit.tags == ["python"]

    async def test_document_is_ordered_array(self, backend: FakePersistenceBackend) -> None:
        cache = ExactResponseCache(backend, save_every=2)
        await cache.set("first prompt", "1")
        await cache.set("second prompt", "2")
        records = backend.records()
        assert [r["response"] for r in records] == ["1", "2"]

    async def test_malformed_document_starts_empty(self, backend: FakePersistenceBackend) -> None:
        backend.seed("token-cache", "{not json")
        cache = ExactResponseCache(backend)
        assert await cache.load() == 0
        assert await cache.get(PROMPT) is None

    async def test_non_array_document_starts_empty(self, backend: FakePersistenceBackend) -> None:
        backend.seed("token-cache", json.dumps({"entries": []}))
        assert await ExactResponseCache(backend).load() == 0

    async def test_bad_records_skipped(self, backend: FakePersistenceBackend) -> None:
        good = CacheEntry(key=compute_exact_key(PROMPT), response="ok").model_dump(mode="json")
        backend.seed("token-cache", json.dumps([good, {"key": "missing-response"}, "junk"]))
        cache = ExactResponseCache(backend)
        assert await cache.load() == 1
        hit = await cache.get(PROMPT)
        assert hit is not None
        assert hit.response == "ok"

    async def test_write_failure_degrades_to_memory(self) -> None:
        failing = FailingPersistenceBackend()
        cache = ExactResponseCache(failing)
        for i in range(20):
            await cache.set(f"prompt {i}", "r")

        assert cache.memory_only is True
        assert failing.save_calls == 1
        hit = await cache.get("prompt 3")
        assert hit is not None
        assert await cache.save() is False

    async def test_no_backend_is_memory_only(self) -> None:
        cache = ExactResponseCache()
        assert cache.memory_only is True
        assert await cache.load() == 0
        await cache.set(PROMPT, "r")
        assert await cache.save() is False

    async def test_file_backend_round_trip(self, tmp_path: Path) -> None:
        backend = FilePersistenceBackend(tmp_path / ".budgetcache")
        cache = ExactResponseCache(backend, save_every=1)
        await cache.set(PROMPT, "on disk")

        path = tmp_path / ".budgetcache" / "token-cache.json"
        assert path.is_file()

        reloaded = ExactResponseCache(FilePersistenceBackend(tmp_path / ".budgetcache"))
        hit = await reloaded.get(PROMPT)
        assert hit is not None
        assert hit.response == "on disk"


class TestMaintenance:
    """Expiry sweeps, clear, export, and stats should reflect the store."""

    async def test_cleanup_expired(
        self, response_cache: ExactResponseCache, backend: FakePersistenceBackend
    ) -> None:
        await response_cache.set("fresh prompt", "1")
        await response_cache.set("stale prompt", "2")
        _age(response_cache, "stale prompt", days=10)

        assert await response_cache.cleanup_expired() == 1
        assert len(response_cache) == 1
        assert backend.save_calls == 1

    async def test_cleanup_nothing_expired_does_not_save(
        self, response_cache: ExactResponseCache, backend: FakePersistenceBackend
    ) -> None:
        await response_cache.set("fresh prompt", "1")
        assert await response_cache.cleanup_expired() == 0
        assert backend.save_calls == 0

    async def test_clear_removes_document(self, backend: FakePersistenceBackend) -> None:
        cache = ExactResponseCache(backend, save_every=1)
        await cache.set(PROMPT, "r")
        assert backend.exists("token-cache")

        assert await cache.clear() == 1
        assert len(cache) == 0
        assert not backend.exists("token-cache")

    async def test_export(self, response_cache: ExactResponseCache, tmp_path: Path) -> None:
        await response_cache.set(PROMPT, "r")
        out = await response_cache.export(tmp_path / "export.json")
        document = json.loads(out.read_text(encoding="utf-8"))
        assert document["metadata"]["total_entries"] == 1
        assert document["metadata"]["settings"]["similarity_threshold"] == 0.85
        assert document["entries"][0]["response"] == "r"

    async def test_export_failure_raises(
        self, response_cache: ExactResponseCache, tmp_path: Path
    ) -> None:
        await response_cache.set(PROMPT, "r")
        with pytest.raises(PersistenceError, match="Failed to export"):
            await response_cache.export(tmp_path / "missing-dir" / "export.json")

    async def test_stats(self, response_cache: ExactResponseCache) -> None:
        await response_cache.set(PROMPT, "r" * 40)
        await response_cache.get(PROMPT)
        await response_cache.get(PROMPT)

        stats = response_cache.get_stats()
        entry = response_cache._store[compute_exact_key(PROMPT)]
        assert stats["total_entries"] == 1
        assert stats["total_hits"] == 2
        assert stats["hit_ratio"] == 2 / 3
        assert stats["total_tokens_saved"] == entry.tokens_saved * 2
        assert stats["cache_size"] > 0

    async def test_empty_stats(self, response_cache: ExactResponseCache) -> None:
        stats = response_cache.get_stats()
        assert stats["total_entries"] == 0
        assert stats["hit_ratio"] == 0.0
