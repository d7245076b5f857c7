# src/storage/local_store.py - v1
"""Local filesystem record store (default backend)."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from grandlibrary.storage.base_store import BaseRecordStore


class LocalRecordStore(BaseRecordStore):
    """Store records as files under a project root.

    Writes go to a temporary sibling file which is then renamed over the
    target, so readers only ever see the old or the new record.
    """

    def __init__(self, base_path: str | Path = ".") -> None:
        self._base = Path(base_path).expanduser()

    @property
    def base_path(self) -> Path:
        return self._base

    def resolve(self, key: str) -> Path:
        """Resolve a record key relative to the project root."""
        return self._base / key

    async def read(self, key: str) -> str:
        return self.resolve(key).read_text(encoding="utf-8")

    async def write(self, key: str, content: str) -> None:
        path = self.resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
                fh.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def append(self, key: str, content: str) -> None:
        path = self.resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8", newline="\n") as fh:
            fh.write(content)

    async def exists(self, key: str) -> bool:
        return self.resolve(key).exists()

    async def delete(self, key: str) -> None:
        path = self.resolve(key)
        if path.exists():
            path.unlink()

    async def list_dir(self, key: str) -> list[str]:
        p = self.resolve(key)
        if not p.is_dir():
            return []
        return sorted(entry.name for entry in p.iterdir() if not entry.name.startswith("."))
