"""Tests for the conversation engine that fronts the compressor and both cache tiers."""

from __future__ import annotations

from budgetcache.context.cache.semantic import StrategyCache
from budgetcache.context.compression.budget import ContextCompressor
from budgetcache.context.engine import ConversationEngine, create_engine
from budgetcache.core.config import (
    AppSettings,
    CompressionConfig,
    ResponseCacheConfig,
    StrategyCacheConfig,
)
from tests.fakes.fake_persistence import FakePersistenceBackend

PROMPT = "how do I configure the logging level for the python service"


class TestLookupOrder:
    """lookup should try the exact tier first, then the strategy tier."""

    async def test_miss_on_empty_engine(self) -> None:
        engine = create_engine()
        assert await engine.lookup(PROMPT) is None

    async def test_exact_hit(self) -> None:
        engine = create_engine()
        await engine.store(PROMPT, "set BCACHE_OBSERVABILITY_LOG_LEVEL", context="ctx")

        hit = await engine.lookup(PROMPT, context="ctx")
        assert hit is not None
        assert hit.source == "exact"
        assert hit.similarity == 1.0
        assert hit.response == "set BCACHE_OBSERVABILITY_LOG_LEVEL"
        assert hit.tokens_saved > 0

    async def test_semantic_hit(self) -> None:
        engine = create_engine()
        await engine.store(PROMPT, "use the env var")

        hit = await engine.lookup(PROMPT + " please")
        assert hit is not None
        assert hit.source == "semantic"
        assert hit.similarity == 8 / 9

    async def test_same_prompt_other_context_is_semantic(self) -> None:
        engine = create_engine()
        await engine.store("explain the deploy pipeline", "alpha answer", context="project alpha")

        hit = await engine.lookup("explain the deploy pipeline", context="project beta")
        assert hit is not None
        assert hit.response == "alpha answer"
        assert hit.source == "semantic"
        assert hit.similarity == 1.0

    async def test_strategy_tier_serves_when_exact_tier_absent(self) -> None:
        engine = ConversationEngine(ContextCompressor(), None, StrategyCache())
        await engine.store("show me the status", "all green", tokens_saved=12)

        hit = await engine.lookup("show me the status")
        assert hit is not None
        assert hit.source == "strategy"
        assert hit.tokens_saved == 12

    async def test_exact_tier_is_consulted_first(self) -> None:
        engine = create_engine()
        await engine.store("show me the status", "all green")

        hit = await engine.lookup("show me the status")
        assert hit is not None
        assert hit.source == "exact"
        # The strategy tier was never asked, so its entry keeps its initial count
        entry = next(iter(engine.strategy_cache._entries.values()))
        assert entry.access_count == 1

    async def test_ungated_prompt_only_reaches_exact_tier(self) -> None:
        engine = create_engine()
        await engine.store(PROMPT, "use the env var")
        assert len(engine.strategy_cache) == 0
        assert len(engine.response_cache) == 1


class TestOptimize:
    """optimize should delegate to the compressor with the configured budget."""

    def test_delegates_to_compressor(self, conversation: list[dict]) -> None:
        engine = create_engine()
        result = engine.optimize(conversation)
        assert result.metrics.strategy == "none"
        assert result.optimized_messages == conversation

    def test_explicit_budget(self, conversation: list[dict]) -> None:
        engine = create_engine()
        result = engine.optimize(conversation, token_budget=300)
        assert result.metrics.optimized_tokens <= result.metrics.original_tokens
        assert result.metrics.strategy != "none"


class TestMaintenance:
    """cleanup, flush, and stats should cover both tiers."""

    async def test_cleanup_reports_both_tiers(self) -> None:
        engine = create_engine()
        assert await engine.cleanup() == {"response_cache": 0, "strategy_cache": 0}

    async def test_flush_writes_through_backend(self) -> None:
        backend = FakePersistenceBackend()
        engine = create_engine(backend=backend)
        await engine.store(PROMPT, "use the env var")

        assert await engine.flush() is True
        assert backend.save_calls == 1
        assert backend.exists("token-cache")

    async def test_flush_without_exact_tier(self) -> None:
        engine = ConversationEngine(ContextCompressor())
        assert await engine.flush() is False

    def test_stats_keys(self) -> None:
        stats = create_engine().get_stats()
        assert set(stats) == {"compressor", "response_cache", "strategy_cache"}
        assert stats["response_cache"]["total_entries"] == 0


class TestCreateEngine:
    """create_engine should honour tier toggles and overrides from settings."""

    def test_disabled_tiers_are_absent(self) -> None:
        settings = AppSettings(
            response_cache=ResponseCacheConfig(enabled=False, backend="memory"),
            strategy_cache=StrategyCacheConfig(enabled=False),
        )
        engine = create_engine(settings)
        assert engine.response_cache is None
        assert engine.strategy_cache is None
        assert engine.get_stats()["response_cache"] is None

    def test_disabled_strategies_applied(self) -> None:
        settings = AppSettings(
            response_cache=ResponseCacheConfig(backend="memory"),
            strategy_cache=StrategyCacheConfig(disabled_strategies=["tool_calls"]),
        )
        engine = create_engine(settings)
        assert engine.strategy_cache is not None
        assert engine.strategy_cache.strategies["tool_calls"].enabled is False
        assert engine.strategy_cache.strategies["simple_commands"].enabled is True

    def test_custom_classifier(self) -> None:
        settings = AppSettings(response_cache=ResponseCacheConfig(backend="memory"))
        engine = create_engine(settings, classifier=lambda text: ["tool"])
        assert engine.strategy_cache is not None
        assert engine.strategy_cache.should_cache("anything").strategy_id == "tool_calls"

    def test_settings_budget_reaches_compressor(self, conversation: list[dict]) -> None:
        settings = AppSettings(
            compression=CompressionConfig(token_budget=1234),
            response_cache=ResponseCacheConfig(backend="memory"),
        )
        engine = create_engine(settings)
        assert engine.optimize(conversation).metrics.strategy != "none"
        assert create_engine().optimize(conversation).metrics.strategy == "none"
