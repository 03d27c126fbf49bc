"""Pluggable persistence backends for the response cache document."""

from __future__ import annotations

from typing import TYPE_CHECKING

from budgetcache.exceptions import ConfigurationError
from budgetcache.persistence.file_backend import FilePersistenceBackend
from budgetcache.persistence.memory_backend import MemoryPersistenceBackend
from budgetcache.persistence.protocols import IPersistenceBackend

if TYPE_CHECKING:
    from budgetcache.core.config import ResponseCacheConfig

__all__ = [
    "IPersistenceBackend",
    "FilePersistenceBackend",
    "MemoryPersistenceBackend",
    "create_backend",
]


def create_backend(config: ResponseCacheConfig) -> IPersistenceBackend:
    """Create the persistence backend named by ``config.backend``."""
    if config.backend == "file":
        return FilePersistenceBackend(config.cache_dir)
    elif config.backend == "memory":
        return MemoryPersistenceBackend()
    else:
        raise ConfigurationError(f"Unknown persistence backend: {config.backend!r}")
