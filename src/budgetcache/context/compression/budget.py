"""Token-budget compressor for multi-turn conversations.

Fits a message list into a token budget in up to two passes:

1. **prune**: keep every system message and the most recent turns, then
   re-admit older messages by importance while they still fit.
2. **summarize**: if that is still over budget, keep the first and last few
   turns and fold everything in between into one ``[CONTEXT SUMMARY]``
   system message.

System messages are never dropped and never folded into the summary. The
budget is a soft limit: a single oversized message can still exceed it.
"""

from __future__ import annotations

import logging
import re
import time
from collections import OrderedDict

from budgetcache.context.compression.importance import ImportanceScorer
from budgetcache.context.models import MessageMetric, OptimizationMetrics, OptimizationResult
from budgetcache.context.text import content_to_text, sha256_hex
from budgetcache.context.tokens import TokenEstimator
from budgetcache.core.types import JsonDict, Message, MessageList

log = logging.getLogger(__name__)

SUMMARY_PREFIX = "[CONTEXT SUMMARY]"

# Action categories reported in the summary, in display order
ACTION_CATEGORIES: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "file operations",
        re.compile(r"\b(file|read|write|edit|creat|delet|director|folder|path)", re.IGNORECASE),
    ),
    (
        "bug fixing",
        re.compile(r"\b(bug|fix|error|exception|crash|debug|traceback|broken)", re.IGNORECASE),
    ),
    (
        "feature development",
        re.compile(r"\b(feature|implement|add|build|refactor|component|endpoint)", re.IGNORECASE),
    ),
    (
        "testing",
        re.compile(r"\b(test|pytest|assert|coverage|spec|mock)", re.IGNORECASE),
    ),
)


class ContextCompressor:
    """Reduce a message list to fit a token budget.

    Holds a capped, FIFO-evicted table of per-message metrics keyed by
    content hash. The table is bookkeeping only and never affects the
    returned messages.
    """

    def __init__(
        self,
        estimator: TokenEstimator | None = None,
        scorer: ImportanceScorer | None = None,
        *,
        default_budget: int = 180_000,
        recent_window: int = 4,
        summary_head: int = 2,
        summary_tail: int = 3,
        metrics_max_entries: int = 1000,
    ) -> None:
        self._estimator = estimator or TokenEstimator()
        self._scorer = scorer or ImportanceScorer()
        self._default_budget = default_budget
        self._recent_window = recent_window
        self._summary_head = summary_head
        self._summary_tail = summary_tail
        self._metrics_max_entries = metrics_max_entries
        self._metrics: OrderedDict[str, MessageMetric] = OrderedDict()
        self._optimizations = 0
        self._last_ratio = 0.0

    def optimize(
        self,
        messages: MessageList,
        token_budget: int | None = None,
    ) -> OptimizationResult:
        """Fit *messages* into *token_budget* (defaults to the configured budget)."""
        budget = self._default_budget if token_budget is None else token_budget
        self._optimizations += 1

        tokens = [self._estimator.estimate_message(m) for m in messages]
        original_tokens = sum(tokens)
        total = len(messages)
        importance = [
            self._scorer.score(m, total - 1 - i, total) for i, m in enumerate(messages)
        ]
        self._record_metrics(messages, tokens, importance)

        if original_tokens <= budget:
            return self._result(list(messages), messages, original_tokens, original_tokens, "none")

        pruned = self._prune(messages, tokens, importance, budget)
        pruned_tokens = sum(tokens[i] for i in pruned)
        pruned_messages = [messages[i] for i in pruned]

        if pruned_tokens <= budget:
            log.debug(
                f"Pruned {total - len(pruned)} messages: {original_tokens} -> {pruned_tokens} tokens"
            )
            return self._result(pruned_messages, messages, original_tokens, pruned_tokens, "prune")

        collapsed = self._summarize(messages)
        if collapsed is not None:
            collapsed_tokens = self._estimator.estimate_messages(collapsed)
            if collapsed_tokens <= original_tokens:
                log.info(
                    f"Summarized conversation: {original_tokens} -> {collapsed_tokens} tokens "
                    f"(budget {budget})"
                )
                if collapsed_tokens > budget:
                    log.warning(
                        f"Context still exceeds budget after summary: {collapsed_tokens} > {budget}"
                    )
                return self._result(
                    collapsed, messages, original_tokens, collapsed_tokens, "summarize"
                )

        log.warning(f"Context still exceeds budget after pruning: {pruned_tokens} > {budget}")
        return self._result(pruned_messages, messages, original_tokens, pruned_tokens, "prune")

    # ── Passes ───────────────────────────────────────────────────────

    def _prune(
        self,
        messages: MessageList,
        tokens: list[int],
        importance: list[float],
        budget: int,
    ) -> list[int]:
        """Indices to keep: system messages, the recent window, then older by importance."""
        system_idx = [i for i, m in enumerate(messages) if _is_system(m)]
        other_idx = [i for i, m in enumerate(messages) if not _is_system(m)]

        split = max(0, len(other_idx) - self._recent_window)
        older, recent = other_idx[:split], other_idx[split:]

        kept = set(system_idx) | set(recent)
        used = sum(tokens[i] for i in kept)

        # Highest importance first; newer wins ties
        for i in sorted(older, key=lambda i: (-importance[i], -i)):
            if used + tokens[i] <= budget:
                kept.add(i)
                used += tokens[i]

        return sorted(kept)

    def _summarize(self, messages: MessageList) -> MessageList | None:
        """Collapse the middle of the non-system history into one summary message."""
        other_idx = [i for i, m in enumerate(messages) if not _is_system(m)]
        if len(other_idx) <= self._summary_head + self._summary_tail:
            return None

        head = other_idx[: self._summary_head]
        tail = other_idx[len(other_idx) - self._summary_tail :]
        middle = other_idx[self._summary_head : len(other_idx) - self._summary_tail]
        middle_set = set(middle)
        tail_start = tail[0] if tail else len(messages)

        summary = {
            "role": "system",
            "content": build_summary([messages[i] for i in middle]),
        }

        out: MessageList = []
        for i, message in enumerate(messages):
            if i == tail_start:
                out.append(summary)
            if i in middle_set:
                continue
            out.append(message)
        if tail_start == len(messages):
            out.append(summary)
        return out

    # ── Bookkeeping ──────────────────────────────────────────────────

    def _record_metrics(
        self,
        messages: MessageList,
        tokens: list[int],
        importance: list[float],
    ) -> None:
        now = time.time()
        for message, estimated, score in zip(messages, tokens, importance):
            role = str(message.get("role", ""))
            key = sha256_hex(role, content_to_text(message.get("content")))
            self._metrics.pop(key, None)
            self._metrics[key] = MessageMetric(
                estimated_tokens=estimated,
                importance=score,
                timestamp=now,
                role=role,
            )
        while len(self._metrics) > self._metrics_max_entries:
            self._metrics.popitem(last=False)

    def _result(
        self,
        optimized: MessageList,
        original: MessageList,
        original_tokens: int,
        optimized_tokens: int,
        strategy: str,
    ) -> OptimizationResult:
        ratio = (original_tokens - optimized_tokens) / original_tokens if original_tokens else 0.0
        self._last_ratio = ratio
        return OptimizationResult(
            optimized_messages=optimized,
            metrics=OptimizationMetrics(
                original_tokens=original_tokens,
                optimized_tokens=optimized_tokens,
                compression_ratio=ratio,
                original_count=len(original),
                optimized_count=len(optimized),
                strategy=strategy,  # type: ignore[arg-type]
            ),
        )

    def get_metric(self, message: Message) -> MessageMetric | None:
        """Look up the recorded metric for *message*, if still tracked."""
        key = sha256_hex(str(message.get("role", "")), content_to_text(message.get("content")))
        return self._metrics.get(key)

    def get_stats(self) -> JsonDict:
        metrics = list(self._metrics.values())
        return {
            "tracked_messages": len(metrics),
            "total_estimated_tokens": sum(m.estimated_tokens for m in metrics),
            "average_importance": (
                sum(m.importance for m in metrics) / len(metrics) if metrics else 0.0
            ),
            "optimizations": self._optimizations,
            "last_compression_ratio": self._last_ratio,
        }

    def clear_metrics(self) -> None:
        self._metrics.clear()


def build_summary(messages: MessageList) -> str:
    """Describe a collapsed span by the action categories it touched."""
    text = "\n".join(content_to_text(m.get("content")) for m in messages)
    categories = [name for name, pattern in ACTION_CATEGORIES if pattern.search(text)]
    topics = ", ".join(categories) if categories else "general discussion"
    return (
        f"{SUMMARY_PREFIX} {len(messages)} earlier messages were condensed. "
        f"Topics covered: {topics}."
    )


def _is_system(message: Message) -> bool:
    return message.get("role") == "system"
