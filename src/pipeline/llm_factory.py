# src/pipeline/llm_factory.py - v1
"""LLM factory: creates per-role LLM clients using config routing.

Clients are cached by provider:model so roles sharing an assignment reuse
a single client instance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from grandlibrary.llm.client_factory import create_llm_client
from grandlibrary.llm.config import resolve_llm

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings
    from grandlibrary.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


class LLMFactory:
    """Create and cache LLM clients per worker role."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._clients: dict[str, BaseLLMClient] = {}

    def get_client(self, role: str) -> BaseLLMClient:
        assignment = resolve_llm(role, self._settings)
        cache_key = assignment.key

        if cache_key not in self._clients:
            self._clients[cache_key] = create_llm_client(
                assignment.provider, assignment.model, self._settings
            )
            logger.info(
                "Created LLM client for '%s': %s (source: %s)",
                role, cache_key, assignment.source,
            )
        return self._clients[cache_key]

    def __call__(self, role: str) -> BaseLLMClient:
        """Callable interface for WorkerDispatcher.llm_factory."""
        return self.get_client(role)
