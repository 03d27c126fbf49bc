"""Strategy registry, request classification, and condition evaluation.

Classification is a plain function from text to canonical request types so
that the keyword tables can change without touching matching or eviction.
Condition evaluation is fail-closed: anything it does not understand is a
non-match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

from budgetcache.context.models import Condition, Strategy

log = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

# Canonical request type → keywords (English, Italian)
REQUEST_KEYWORDS: dict[str, tuple[str, ...]] = {
    "help": ("help", "aiuto"),
    "status": ("status", "stato"),
    "list": ("list", "lista"),
    "info": ("info", "informazioni"),
    "analyze": ("analyze", "analyse", "analizza"),
    "review": ("review", "revisiona"),
    "check": ("check", "controlla"),
    "create": ("create", "crea"),
    "generate": ("generate", "genera"),
    "build": ("build", "costruisci"),
    "run": ("run", "esegui"),
    "execute": ("execute", "esegui"),
    "tool": ("tool", "strumento"),
}

_KEYWORD_PATTERNS: dict[str, re.Pattern[str]] = {
    category: re.compile(r"\b(?:" + "|".join(map(re.escape, words)) + r")")
    for category, words in REQUEST_KEYWORDS.items()
}


class RequestClassifier(Protocol):
    """Maps normalized request text to canonical request types."""

    def __call__(self, text: str) -> list[str]: ...


def detect_request_types(text: str) -> list[str]:
    """Canonical request types whose keywords start a word in *text*.

    Matching is on lowercase text; a keyword also matches its inflections
    (``analyzed``, ``creating``), but not words that merely contain it.
    """
    lowered = text.lower()
    return [category for category, pattern in _KEYWORD_PATTERNS.items() if pattern.search(lowered)]


def default_strategies() -> dict[str, Strategy]:
    """A fresh copy of the built-in strategy table, in evaluation order."""
    return {
        "simple_commands": Strategy(
            name="Simple Commands",
            enabled=True,
            max_age=12 * HOUR,
            max_size=50,
            similarity_threshold=0.98,
            tags=["command", "simple", "frequent"],
            conditions=[
                Condition("content_length", 100, "less_than"),
                Condition("request_type", ["help", "status", "list", "info"], "contains"),
            ],
        ),
        "code_analysis": Strategy(
            name="Code Analysis",
            enabled=True,
            max_age=1 * HOUR,
            max_size=30,
            similarity_threshold=0.98,
            tags=["analysis", "code", "review"],
            conditions=[
                Condition("request_type", ["analyze", "review", "check"], "contains"),
                Condition("content_length", 150, "greater_than"),
            ],
        ),
        "code_generation": Strategy(
            name="Code Generation",
            enabled=False,
            max_age=30 * MINUTE,
            max_size=10,
            similarity_threshold=0.98,
            tags=["generation", "code", "create"],
            conditions=[
                Condition("request_type", ["create", "generate", "build"], "contains"),
            ],
        ),
        "frequent_questions": Strategy(
            name="Frequent Questions",
            enabled=True,
            max_age=3 * DAY,
            max_size=100,
            similarity_threshold=0.98,
            tags=["faq", "help", "common"],
            conditions=[
                Condition("frequency", 2, "greater_than"),
            ],
        ),
        "tool_calls": Strategy(
            name="Tool Calls",
            enabled=True,
            max_age=15 * MINUTE,
            max_size=50,
            similarity_threshold=0.98,
            tags=["tool", "execution", "command"],
            conditions=[
                Condition("request_type", ["run", "execute", "tool"], "contains"),
            ],
        ),
    }


def compare(actual: Any, expected: Any, operator: str) -> bool:
    """Apply a condition operator; unsupported operands never match."""
    try:
        if operator == "equals":
            return actual == expected
        if operator == "contains":
            if isinstance(expected, (list, tuple, set)):
                return any(item in actual for item in expected)
            return expected in actual
        if operator == "greater_than":
            return actual > expected
        if operator == "less_than":
            return actual < expected
        if operator == "regex":
            if not isinstance(actual, str):
                return False
            return re.search(str(expected), actual) is not None
    except (TypeError, re.error) as e:
        log.debug(f"Condition operator {operator!r} not applicable: {e}")
        return False
    return False


def evaluate_condition(
    condition: Condition,
    content: str,
    *,
    classifier: RequestClassifier = detect_request_types,
    frequencies: Mapping[str, int] | None = None,
) -> bool:
    """Evaluate one condition against normalized *content*."""
    if condition.type == "content_length":
        return compare(len(content), condition.value, condition.operator)
    if condition.type == "request_type":
        return compare(classifier(content), condition.value, condition.operator)
    if condition.type == "user_pattern":
        return compare(content, condition.value, condition.operator)
    if condition.type == "frequency":
        observed = (frequencies or {}).get(content, 0)
        return compare(observed, condition.value, condition.operator)
    return False


def matches_strategy(
    strategy: Strategy,
    content: str,
    *,
    classifier: RequestClassifier = detect_request_types,
    frequencies: Mapping[str, int] | None = None,
) -> bool:
    """True when every condition of *strategy* holds for *content*."""
    return all(
        evaluate_condition(c, content, classifier=classifier, frequencies=frequencies)
        for c in strategy.conditions
    )
