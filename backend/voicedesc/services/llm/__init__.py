"""
LLM Service - Abstraction layer for Language Model providers

    from voicedesc.services.llm import get_llm_provider

    llm = get_llm_provider()
    response = await llm.generate("Your prompt here")
    print(response.text)
"""

from .base import LLMConfig, LLMProvider, LLMResponse, ProviderType, UsageStats
from .factory import clear_provider_cache, get_default_provider_type, get_llm_provider
from .gemini_provider import GeminiProvider
from .ollama_provider import OllamaProvider

__all__ = [
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "ProviderType",
    "UsageStats",
    "GeminiProvider",
    "OllamaProvider",
    "clear_provider_cache",
    "get_default_provider_type",
    "get_llm_provider",
]
