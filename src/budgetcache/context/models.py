"""Data models for context compression and the two cache tiers."""

from __future__ import annotations

import dataclasses
import time
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

ConditionType = Literal["content_length", "request_type", "user_pattern", "frequency"]
ConditionOperator = Literal["equals", "contains", "greater_than", "less_than", "regex"]


# ── Context compression ──────────────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class MessageMetric:
    """Per-message bookkeeping recorded by the compressor."""

    estimated_tokens: int
    importance: float
    timestamp: float
    role: str


@dataclasses.dataclass(frozen=True)
class OptimizationMetrics:
    """Token accounting for one ``optimize`` call."""

    original_tokens: int
    optimized_tokens: int
    compression_ratio: float
    original_count: int
    optimized_count: int
    strategy: Literal["none", "prune", "summarize"] = "none"

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.optimized_tokens


@dataclasses.dataclass(frozen=True)
class OptimizationResult:
    """Result of fitting a message list into a token budget."""

    optimized_messages: list[dict[str, Any]]
    metrics: OptimizationMetrics


# ── Exact response cache ─────────────────────────────────────────────


class CacheEntry(BaseModel):
    """A persisted prompt → response record of the exact cache tier."""

    key: str
    signature_words: list[str] = Field(default_factory=list)
    prompt_preview: str = ""
    response: str
    response_preview: str = ""
    response_hash: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tokens_saved: int = 0
    hit_count: int = 0
    tags: list[str] = Field(default_factory=list)
    similarity: float = 1.0

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        stamp = self.timestamp
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return (now - stamp).total_seconds()


# ── Strategy-gated semantic cache ────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class Condition:
    """One predicate of a strategy; all conditions of a strategy must hold."""

    type: ConditionType
    value: Any
    operator: ConditionOperator


@dataclasses.dataclass
class Strategy:
    """A named, independently configurable caching policy."""

    name: str
    enabled: bool = True
    max_age: float = 60 * 60
    max_size: int = 50
    similarity_threshold: float = 0.98
    tags: list[str] = dataclasses.field(default_factory=list)
    conditions: list[Condition] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class StrategyEntry:
    """A response stored under a strategy in the semantic tier."""

    id: str
    content: str
    context: str
    response: str
    strategy: str
    timestamp: float = dataclasses.field(default_factory=time.time)
    last_accessed: float = dataclasses.field(default_factory=time.time)
    access_count: int = 1
    tags: list[str] = dataclasses.field(default_factory=list)
    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def tokens_saved(self) -> int:
        return int(self.metadata.get("tokens_saved", 0))


@dataclasses.dataclass(frozen=True)
class CacheDecision:
    """Outcome of gating a request against the strategy registry."""

    should: bool
    reason: str
    strategy_id: str | None = None


@dataclasses.dataclass(frozen=True)
class CacheLookup:
    """A cached answer found by the engine, whichever tier served it."""

    response: str
    source: Literal["exact", "semantic", "strategy"]
    similarity: float
    tokens_saved: int = 0
