"""Storage contract for the persisted response cache document."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IPersistenceBackend(Protocol):
    """Whole-document store: each key holds one JSON text, rewritten in full.

    Implementations are synchronous; the response cache calls them through
    ``asyncio.to_thread``.
    """

    def save(self, key: str, document: str) -> None:
        """Replace the document stored under *key*."""
        ...

    def load(self, key: str) -> str:
        """Return the document under *key*. Raises KeyError if absent."""
        ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None:
        """Remove the document under *key*; absent keys are ignored."""
        ...
