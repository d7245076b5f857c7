# src/llm/config.py - v2
"""Which provider:model each worker role talks to.

A role setting such as LLM_DRAFTER=openai:gpt-4o wins; otherwise the
LLM_DEFAULT_PROVIDER / LLM_DEFAULT_MODEL pair; otherwise a built-in model.
"""

from __future__ import annotations

from dataclasses import dataclass

from grandlibrary.config.settings import Settings


@dataclass(frozen=True)
class LLMAssignment:
    provider: str
    model: str
    source: str  # role | default | fallback

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.model}"

    @classmethod
    def parse(cls, value: str, source: str) -> LLMAssignment | None:
        """'provider:model' -> assignment; None when the value has no colon."""
        provider, sep, model = (value or "").partition(":")
        if not sep:
            return None
        return cls(provider.strip(), model.strip(), source)


FALLBACK = LLMAssignment("anthropic", "claude-sonnet-4-20250514", "fallback")


def resolve_llm(role: str, settings: Settings) -> LLMAssignment:
    override = LLMAssignment.parse(getattr(settings, f"llm_{role}", ""), "role")
    if override is not None:
        return override
    if settings.llm_default_provider and settings.llm_default_model:
        return LLMAssignment(settings.llm_default_provider, settings.llm_default_model, "default")
    return FALLBACK

