"""Shared fixtures for budgetcache tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog

from budgetcache.context.cache.response import ExactResponseCache
from budgetcache.context.cache.semantic import StrategyCache
from budgetcache.context.compression.budget import ContextCompressor
from tests.fakes.fake_persistence import FakePersistenceBackend


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo ``setup_logging`` calls made by CLI and logging tests."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)
    root.setLevel(level)
    logging.getLogger("budgetcache").setLevel(logging.NOTSET)


@pytest.fixture
def backend() -> FakePersistenceBackend:
    return FakePersistenceBackend()


@pytest.fixture
def response_cache(backend: FakePersistenceBackend) -> ExactResponseCache:
    """Exact cache over a dict-backed backend."""
    return ExactResponseCache(backend)


@pytest.fixture
def strategy_cache() -> StrategyCache:
    """Strategy cache with the default strategy table."""
    return StrategyCache()


@pytest.fixture
def compressor() -> ContextCompressor:
    return ContextCompressor()


@pytest.fixture
def conversation() -> list[dict]:
    """System prompt plus eight short user/assistant turns."""
    messages = [{"role": "system", "content": "You are a careful coding assistant."}]
    for i in range(8):
        messages.append({"role": "user", "content": f"Question {i}: " + "detail " * 50})
        messages.append({"role": "assistant", "content": f"Answer {i}: " + "reply " * 50})
    return messages
