"""
LLM Provider Factory

Resolves which backend serves the analysis and narrative steps and keeps
one instance per backend for the life of the process.
"""

from typing import Any, Callable, Dict, Optional

from voicedesc.config.models import get_active_provider

from .base import LLMProvider, ProviderType
from .gemini_provider import GeminiProvider
from .ollama_provider import OllamaProvider

_provider_cache: Dict[ProviderType, LLMProvider] = {}

_UNAVAILABLE_HINTS = {
    ProviderType.GEMINI: "Set GEMINI_API_KEY environment variable or use LLM_PROVIDER=ollama",
    ProviderType.OLLAMA: "Make sure Ollama is running (ollama serve) or set LLM_PROVIDER=gemini",
}


def _build_gemini(options: Dict[str, Any]) -> LLMProvider:
    return GeminiProvider(api_key=options.get("api_key"))


def _build_ollama(options: Dict[str, Any]) -> LLMProvider:
    return OllamaProvider(base_url=options.get("base_url"), timeout=options.get("timeout", 300.0))


_BUILDERS: Dict[ProviderType, Callable[[Dict[str, Any]], LLMProvider]] = {
    ProviderType.GEMINI: _build_gemini,
    ProviderType.OLLAMA: _build_ollama,
}


def get_default_provider_type() -> ProviderType:
    """Provider named by the environment (see ``config.models.get_active_provider``)."""
    return ProviderType(get_active_provider().value)


def get_llm_provider(
    provider_type: Optional[ProviderType] = None,
    use_cache: bool = True,
    **kwargs
) -> LLMProvider:
    """Get an LLM provider instance

    Args:
        provider_type: Specific provider to use. If None, uses default.
        use_cache: Whether to cache and reuse provider instances
        **kwargs: ``api_key`` for Gemini; ``base_url``/``timeout`` for Ollama;
            ``check_available=False`` skips the Ollama reachability probe

    Raises:
        ValueError: If provider is unknown or not available
    """
    provider_type = provider_type or get_default_provider_type()
    if use_cache and provider_type in _provider_cache:
        return _provider_cache[provider_type]

    builder = _BUILDERS.get(provider_type)
    if builder is None:
        raise ValueError(f"Unknown provider type: {provider_type}")
    provider = builder(kwargs)

    # Gemini availability is a local key check; Ollama needs a network probe
    probe = provider_type is ProviderType.GEMINI or kwargs.get("check_available", True)
    if probe and not provider.is_available():
        raise ValueError(
            f"{provider_type.value.capitalize()} provider is not available. "
            f"{_UNAVAILABLE_HINTS[provider_type]}"
        )

    if use_cache:
        _provider_cache[provider_type] = provider
    return provider


def clear_provider_cache():
    """Clear the provider cache"""
    _provider_cache.clear()
