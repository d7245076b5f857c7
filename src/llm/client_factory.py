# src/llm/client_factory.py - v3
"""Build a provider adapter from a (provider, model) pair.

Adapters are imported on first use so a missing SDK only matters for the
provider that is actually configured.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass

from grandlibrary.config.settings import Settings
from grandlibrary.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Provider:
    module: str
    adapter: str
    key_setting: str

    def load(self) -> type[BaseLLMClient]:
        return getattr(importlib.import_module(self.module), self.adapter)


_PROVIDERS: dict[str, _Provider] = {
    "anthropic": _Provider(
        "grandlibrary.llm.adapters.anthropic_adapter", "AnthropicAdapter", "anthropic_api_key"
    ),
    "openai": _Provider(
        "grandlibrary.llm.adapters.openai_adapter", "OpenAIAdapter", "openai_api_key"
    ),
}


class UnsupportedProviderError(ValueError):
    """Provider name has no adapter."""


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Return an adapter for ``provider`` bound to ``model``.

    The API key comes from settings unless passed explicitly in kwargs.
    """
    entry = _PROVIDERS.get(provider)
    if entry is None:
        known = ", ".join(sorted(_PROVIDERS))
        raise UnsupportedProviderError(f"Unknown LLM provider {provider!r}. Available: {known}")

    options = {**kwargs, "model": model}
    if settings is not None and "api_key" not in options:
        options["api_key"] = getattr(settings, entry.key_setting)

    logger.debug("LLM client %s:%s", provider, model)
    return entry.load()(**options)
