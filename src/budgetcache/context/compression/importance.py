"""Retention priority scoring for conversation messages."""

from __future__ import annotations

import re
from typing import Any

from budgetcache.context.text import content_to_text

ROLE_WEIGHTS: dict[str, float] = {
    "system": 0.3,
    "user": 0.2,
    "assistant": 0.1,
}

# Terms that mark a message as carrying decisions, failures, or code changes
IMPORTANT_KEYWORDS: tuple[str, ...] = (
    "error",
    "bug",
    "fix",
    "important",
    "critical",
    "todo",
    "implement",
    "function",
    "class",
    "file",
    "test",
    "fail",
    "exception",
    "requirement",
)

_KEYWORD_RE = re.compile(r"\b(" + "|".join(IMPORTANT_KEYWORDS) + r")", re.IGNORECASE)


class ImportanceScorer:
    """Score a message's retention priority in [0, 1].

    ``0.4·recency + role weight + 0.05·min(keyword matches, cap)``, minus a
    penalty for very long messages, which are the cheapest to give up per
    unit of lost context.
    """

    def __init__(
        self,
        *,
        recency_weight: float = 0.4,
        keyword_weight: float = 0.05,
        keyword_cap: int = 4,
        long_message_chars: int = 5000,
        long_message_penalty: float = 0.1,
    ) -> None:
        self._recency_weight = recency_weight
        self._keyword_weight = keyword_weight
        self._keyword_cap = keyword_cap
        self._long_message_chars = long_message_chars
        self._long_message_penalty = long_message_penalty

    def score(self, message: dict[str, Any], index: int, total: int) -> float:
        """Score *message*; ``index`` counts back from the newest message (0 = newest)."""
        text = content_to_text(message.get("content"))
        recency = (total - index) / total if total > 0 else 0.0

        score = self._recency_weight * recency
        score += ROLE_WEIGHTS.get(str(message.get("role", "")), 0.0)
        score += self._keyword_weight * min(count_keyword_matches(text), self._keyword_cap)
        if len(text) > self._long_message_chars:
            score -= self._long_message_penalty

        return max(0.0, min(1.0, score))


def count_keyword_matches(text: str) -> int:
    """Number of distinct important keywords present in *text*."""
    return len({m.lower() for m in _KEYWORD_RE.findall(text)})
