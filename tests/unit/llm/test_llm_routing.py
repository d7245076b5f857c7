# tests/unit/llm/test_llm_routing.py - v1
"""Tests for llm/config.py, llm/client_factory.py and pipeline/llm_factory.py."""

from __future__ import annotations

import pytest

from grandlibrary.config.settings import Settings
from grandlibrary.llm.adapters.anthropic_adapter import AnthropicAdapter
from grandlibrary.llm.adapters.openai_adapter import OpenAIAdapter
from grandlibrary.llm.client_factory import UnsupportedProviderError, create_llm_client
from grandlibrary.llm.config import resolve_llm
from grandlibrary.pipeline.llm_factory import LLMFactory


class TestResolveLLM:
    def test_role_override(self):
        s = Settings(_env_file=None, llm_drafter="openai:gpt-4o")
        assignment = resolve_llm("drafter", s)
        assert (assignment.provider, assignment.model, assignment.source) == (
            "openai", "gpt-4o", "role",
        )
        assert assignment.key == "openai:gpt-4o"

    def test_default(self):
        assignment = resolve_llm("surveyor", Settings(_env_file=None))
        assert assignment.source == "default"
        assert assignment.provider == "anthropic"

    def test_malformed_role_value_falls_through(self):
        s = Settings(_env_file=None, llm_fixer="gpt-4o")
        assert resolve_llm("fixer", s).source == "default"

    def test_fallback(self):
        s = Settings(_env_file=None, llm_default_provider="", llm_default_model="")
        assert resolve_llm("compactor", s).source == "fallback"


class TestCreateClient:
    def test_anthropic(self):
        s = Settings(_env_file=None, anthropic_api_key="sk-test")
        client = create_llm_client("anthropic", "claude-test", s)
        assert isinstance(client, AnthropicAdapter)
        assert client.provider_name == "anthropic"

    def test_openai(self):
        client = create_llm_client("openai", "gpt-4o")
        assert isinstance(client, OpenAIAdapter)

    def test_unsupported(self):
        with pytest.raises(UnsupportedProviderError, match="Available: anthropic, openai"):
            create_llm_client("nope", "m")


class TestLLMFactory:
    def test_clients_cached_per_assignment(self):
        factory = LLMFactory(Settings(_env_file=None, llm_reconciler="openai:gpt-4o"))
        assert factory("drafter") is factory("surveyor")
        assert factory("reconciler") is not factory("drafter")
        assert isinstance(factory("reconciler"), OpenAIAdapter)
