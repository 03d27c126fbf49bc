"""Text normalization and word-set similarity shared by both cache tiers."""

from __future__ import annotations

import hashlib
import json
import re
from collections import Counter
from collections.abc import Iterable
from typing import Any

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

# Tokens shorter than this carry too little meaning for a fingerprint
MIN_SIGNIFICANT_LENGTH = 3


def normalize_text(text: str, *, strip_punctuation: bool = True) -> str:
    """Lowercase, optionally replace punctuation with spaces, collapse whitespace."""
    lowered = text.lower()
    if strip_punctuation:
        lowered = _PUNCTUATION_RE.sub(" ", lowered)
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def word_set(text: str) -> set[str]:
    """Whitespace-split word set of already-normalized text."""
    return set(text.split())


def significant_tokens(text: str) -> list[str]:
    """Normalized tokens longer than two characters, in order of appearance."""
    return [w for w in normalize_text(text).split() if len(w) >= MIN_SIGNIFICANT_LENGTH]


def signature_words(text: str, size: int = 20) -> list[str]:
    """Top ``size`` significant tokens by frequency, ties broken lexicographically."""
    counts = Counter(significant_tokens(text))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [word for word, _count in ranked[:size]]


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Intersection over union of two token collections.

    Two empty collections are considered identical (1.0).
    """
    set_a = set(a)
    set_b = set(b)
    if not set_a and not set_b:
        return 1.0
    union = set_a | set_b
    return len(set_a & set_b) / len(union)


def content_to_text(content: Any) -> str:
    """Coerce message content (string, list of parts, None) to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, dict):
                text = part.get("text")
                if isinstance(text, str):
                    parts.append(text)
                else:
                    parts.append(json.dumps(part, sort_keys=True, default=str))
            else:
                parts.append(str(part))
        return "\n".join(parts)
    if isinstance(content, dict):
        text = content.get("text")
        if isinstance(text, str):
            return text
        return json.dumps(content, sort_keys=True, default=str)
    return str(content)


def sha256_hex(*parts: str) -> str:
    """Deterministic SHA-256 over ``parts`` joined with an unambiguous separator."""
    raw = "\x1f".join(parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
