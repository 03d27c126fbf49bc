"""Cache key computation for deterministic, collision-resistant keys."""

from __future__ import annotations

import secrets
import time

from budgetcache.context.text import sha256_hex


def compute_exact_key(prompt: str, context: str = "") -> str:
    """Full SHA-256 hex digest over prompt and context.

    Prompt and context are hashed as separate fields, so moving text from
    one to the other changes the key.
    """
    return sha256_hex(prompt, context)


def compute_response_hash(response: str) -> str:
    """Short fingerprint of a response body, used for change detection."""
    return sha256_hex(response)[:16]


def generate_entry_id() -> str:
    """Unique id for a strategy-tier entry."""
    return f"cache_{int(time.time() * 1000)}_{secrets.token_urlsafe(6)}"
