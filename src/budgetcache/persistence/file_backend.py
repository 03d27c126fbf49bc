"""File-based persistence backend: one JSON file per key."""

from __future__ import annotations

import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)


class FilePersistenceBackend:
    """Stores each document as ``<base_path>/<key>.json``.

    The directory is created on first save, so constructing the backend never
    touches the filesystem. Writes go to a sibling temp file that is then
    renamed over the target, so a crash mid-write leaves the previous
    document intact.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path).expanduser()

    @property
    def base_path(self) -> Path:
        return self._base

    def path_for(self, key: str) -> Path:
        name = key.replace("/", "_").replace("\\", "_")
        if not name.endswith(".json"):
            name += ".json"
        return self._base / name

    def save(self, key: str, document: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(document, encoding="utf-8")
        os.replace(tmp, path)
        log.debug(f"Wrote {key} to {path}")

    def load(self, key: str) -> str:
        path = self.path_for(key)
        if not path.is_file():
            raise KeyError(f"Not found: {key} (path: {path})")
        return path.read_text(encoding="utf-8")

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
