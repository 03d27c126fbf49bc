"""Token estimation with two backends.

Modes:
  - ``approximate``: ceil(chars / 4) (no dependencies, fast)
  - ``tiktoken``: OpenAI tiktoken (requires ``tiktoken`` extra)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import Any, Literal

from budgetcache.context.text import content_to_text
from budgetcache.exceptions import TokenizerError

log = logging.getLogger(__name__)

# Cache for tiktoken encoders
_tiktoken_cache: dict[str, object] = {}


class TokenEstimator:
    """Approximate the token count of text and chat messages."""

    def __init__(
        self,
        method: Literal["approximate", "tiktoken"] = "approximate",
        model: str = "gpt-4o",
        chars_per_token: int = 4,
        fallback_encoding: str = "cl100k_base",
    ) -> None:
        self.method = method
        self.model = model
        self._chars_per_token = chars_per_token
        self._fallback_encoding = fallback_encoding

        if method == "tiktoken":
            try:
                import tiktoken  # noqa: F401
            except ImportError as e:
                raise TokenizerError(
                    "tiktoken not installed. Install with: pip install budgetcache[tiktoken]"
                ) from e
        elif method != "approximate":
            raise TokenizerError(f"Unknown tokenizer method: {method!r}")

    def estimate(self, text: str) -> int:
        """Return the estimated token count for *text* (0 for empty text)."""
        if not text:
            return 0
        if self.method == "tiktoken":
            return self._count_tiktoken(text)
        return math.ceil(len(text) / self._chars_per_token)

    def estimate_message(self, message: dict[str, Any]) -> int:
        return self.estimate(content_to_text(message.get("content")))

    def estimate_messages(self, messages: Iterable[dict[str, Any]]) -> int:
        return sum(self.estimate_message(m) for m in messages)

    def _count_tiktoken(self, text: str) -> int:
        import tiktoken

        cache_key = f"{self.model}:{self._fallback_encoding}"
        if cache_key not in _tiktoken_cache:
            try:
                _tiktoken_cache[cache_key] = tiktoken.encoding_for_model(self.model)
            except KeyError:
                log.debug(f"No tiktoken encoding for {self.model}, using {self._fallback_encoding}")
                _tiktoken_cache[cache_key] = tiktoken.get_encoding(self._fallback_encoding)
        enc = _tiktoken_cache[cache_key]
        return len(enc.encode(text))  # type: ignore[attr-defined]
