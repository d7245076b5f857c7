# src/llm/base_client.py - v1
"""Abstract LLM client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from grandlibrary.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers.

    Implementations are stateless between calls: everything the model needs
    travels in the messages and the system prompt.
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Text completion."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (anthropic, openai)."""
