# src/storage/state_store.py - v1
"""Session state persistence: one JSON record, replaced whole on every save."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from grandlibrary.core.errors import CorruptArtifact, NoSessionFound
from grandlibrary.pipeline.state import SessionState
from grandlibrary.storage.base_store import BaseRecordStore
from grandlibrary.storage.layout import Layout
from grandlibrary.version import __version__

logger = logging.getLogger(__name__)


class StateStoreError(CorruptArtifact):
    """STATE.json exists but cannot be parsed."""


class StateStore:
    """Load, create and save the singleton SessionState."""

    def __init__(self, store: BaseRecordStore, layout: Layout) -> None:
        self._store = store
        self._layout = layout

    @property
    def key(self) -> str:
        return self._layout.state

    async def exists(self) -> bool:
        return await self._store.exists(self.key)

    async def load(self) -> SessionState:
        """Load the session state.

        Raises:
            NoSessionFound: If no state record exists yet.
            StateStoreError: If the record is corrupt.
        """
        if not await self._store.exists(self.key):
            raise NoSessionFound(self.key)
        raw = await self._store.read(self.key)
        try:
            return SessionState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StateStoreError(self.key, str(exc)) from exc

    async def create(self, **fields: object) -> SessionState:
        """Create and persist a fresh session state."""
        state = SessionState(version=__version__, **fields)  # type: ignore[arg-type]
        await self.save(state)
        logger.info("Created session state at %s", self.key)
        return state

    async def save(self, state: SessionState) -> None:
        """Replace the state record."""
        state.touch()
        await self._store.write(self.key, state.model_dump_json(indent=2) + "\n")
