"""Shared type aliases for the engine layer."""

from __future__ import annotations

from typing import Any

# Chat message as exchanged with the conversational loop
Message = dict[str, Any]
MessageList = list[dict[str, Any]]

# JSON-like dict used for stats payloads
JsonDict = dict[str, Any]
