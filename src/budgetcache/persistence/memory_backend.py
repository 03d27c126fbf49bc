"""Process-local persistence backend: dict-backed, nothing touches disk."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


class MemoryPersistenceBackend:
    """Holds each cache document as a string, so a cache can be dropped and
    re-hydrated within one process without a cache directory."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    def save(self, key: str, document: str) -> None:
        self._documents[key] = document
        log.debug(f"Stored {key} in memory ({len(document)} chars)")

    def load(self, key: str) -> str:
        if key not in self._documents:
            raise KeyError(f"No in-memory document: {key}")
        return self._documents[key]

    def exists(self, key: str) -> bool:
        return key in self._documents

    def delete(self, key: str) -> None:
        self._documents.pop(key, None)
