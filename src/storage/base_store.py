# src/storage/base_store.py - v1
"""Abstract keyed record store interface.

Records are whole text files addressed by a relative key. Writers replace
a record as a unit; there is no partial or streaming mutation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseRecordStore(ABC):
    """Unified interface for record storage backends."""

    @abstractmethod
    async def read(self, key: str) -> str:
        """Read a whole record. Raises FileNotFoundError if absent."""

    @abstractmethod
    async def write(self, key: str, content: str) -> None:
        """Replace a whole record."""

    @abstractmethod
    async def append(self, key: str, content: str) -> None:
        """Append to a log-style record (used only for the calls log)."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a record exists."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a record if present."""

    @abstractmethod
    async def list_dir(self, key: str) -> list[str]:
        """List record names directly under a directory key (sorted)."""
