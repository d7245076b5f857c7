# src/llm/adapters/anthropic_adapter.py - v3
"""Claude models through the anthropic Messages API."""

from __future__ import annotations

import logging
import time
from typing import Any

from grandlibrary.llm.base_client import BaseLLMClient
from grandlibrary.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


def _usage(usage: Any, field: str) -> int:
    return getattr(usage, field, 0) or 0


class AnthropicAdapter(BaseLLMClient):
    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: str | None = None,
        timeout_s: float = 600.0,
    ) -> None:
        self._model = model
        self._api_key = api_key or None
        self._timeout_s = timeout_s
        self._sdk: Any = None

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _connect(self) -> Any:
        if self._sdk is None:
            import anthropic

            self._sdk = anthropic.AsyncAnthropic(api_key=self._api_key, timeout=self._timeout_s)
        return self._sdk

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.2,
    ) -> LLMResponse:
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [m.model_dump() for m in messages],
        }
        if system:
            request["system"] = system

        started = time.monotonic()
        reply = await self._connect().messages.create(**request)
        elapsed = int((time.monotonic() - started) * 1000)
        logger.debug("anthropic %s answered in %d ms", self._model, elapsed)

        text = "".join(b.text for b in reply.content if getattr(b, "type", None) == "text")
        return LLMResponse(
            content=text,
            input_tokens=_usage(reply.usage, "input_tokens"),
            output_tokens=_usage(reply.usage, "output_tokens"),
            cache_read_tokens=_usage(reply.usage, "cache_read_input_tokens"),
            cache_write_tokens=_usage(reply.usage, "cache_creation_input_tokens"),
            model=reply.model,
            provider=self.provider_name,
            latency_ms=elapsed,
            stop_reason=getattr(reply, "stop_reason", None),
            raw_response=reply,
        )
