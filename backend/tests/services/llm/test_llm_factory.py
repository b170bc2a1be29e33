"""
Tests for voicedesc.services.llm.factory
"""

import pytest

from voicedesc.services.llm.base import ProviderType
from voicedesc.services.llm.factory import (
    clear_provider_cache,
    get_default_provider_type,
    get_llm_provider,
)
from voicedesc.services.llm.gemini_provider import GeminiProvider
from voicedesc.services.llm.ollama_provider import OllamaProvider


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_provider_cache()
    yield
    clear_provider_cache()


class TestDefaultProviderType:
    def test_ollama_without_key(self):
        assert get_default_provider_type() == ProviderType.OLLAMA

    def test_gemini_with_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")

        assert get_default_provider_type() == ProviderType.GEMINI

    def test_explicit_choice_wins(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        monkeypatch.setenv("LLM_PROVIDER", "Ollama")

        assert get_default_provider_type() == ProviderType.OLLAMA


class TestGetLLMProvider:
    def test_ollama_without_availability_check(self):
        provider = get_llm_provider(
            ProviderType.OLLAMA, base_url="http://ollama.test", check_available=False
        )

        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == "http://ollama.test"

    def test_gemini_requires_key(self):
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            get_llm_provider(ProviderType.GEMINI)

    def test_gemini_with_key(self):
        provider = get_llm_provider(ProviderType.GEMINI, api_key="test-key")

        assert isinstance(provider, GeminiProvider)
        assert provider.is_available()

    def test_instances_are_cached(self):
        first = get_llm_provider(ProviderType.OLLAMA, check_available=False)

        assert get_llm_provider(ProviderType.OLLAMA) is first
        assert get_llm_provider(ProviderType.OLLAMA, use_cache=False, check_available=False) is not first

        clear_provider_cache()
        assert get_llm_provider(ProviderType.OLLAMA, check_available=False) is not first
