# src/llm/adapters/openai_adapter.py - v2
"""GPT models through the openai chat-completions API."""

from __future__ import annotations

import logging
import time
from typing import Any

from grandlibrary.llm.base_client import BaseLLMClient
from grandlibrary.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


class OpenAIAdapter(BaseLLMClient):
    def __init__(self, model: str = "gpt-4o", api_key: str = "", timeout_s: float = 600.0):
        self._model = model
        self._api_key = api_key or None
        self._timeout_s = timeout_s
        self._sdk: Any = None

    @property
    def provider_name(self) -> str:
        return "openai"

    def _connect(self) -> Any:
        if self._sdk is None:
            import openai

            self._sdk = openai.AsyncOpenAI(api_key=self._api_key, timeout=self._timeout_s)
        return self._sdk

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.2,
    ) -> LLMResponse:
        # The system prompt is the first chat message for this API.
        chat = [{"role": "system", "content": system}] if system else []
        chat.extend(m.model_dump() for m in messages)

        started = time.monotonic()
        reply = await self._connect().chat.completions.create(
            model=self._model, messages=chat, max_tokens=max_tokens, temperature=temperature
        )
        elapsed = int((time.monotonic() - started) * 1000)
        logger.debug("openai %s answered in %d ms", self._model, elapsed)

        first = reply.choices[0]
        usage = reply.usage
        return LLMResponse(
            content=first.message.content or "",
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            model=self._model,
            provider=self.provider_name,
            latency_ms=elapsed,
            stop_reason=first.finish_reason,
            raw_response=reply,
        )
