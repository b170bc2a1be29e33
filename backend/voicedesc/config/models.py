"""
Model Configuration for Pipeline Steps

Each model-backed pipeline step has its own configuration so that the
analysis and narrative steps can be tuned independently.

=== PROVIDER CONFIGURATION ===

Set LLM_PROVIDER environment variable to switch providers:
    - "gemini" : Use Google Gemini API (requires GEMINI_API_KEY)
    - "ollama" : Use local Ollama models (default)

For Ollama, set OLLAMA_HOST if not using default (http://localhost:11434).
Vision analysis on Ollama needs a multimodal model such as gemma3 or llava.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class LLMProviderType(str, Enum):
    """Supported LLM providers"""
    GEMINI = "gemini"
    OLLAMA = "ollama"


def get_active_provider() -> LLMProviderType:
    """Get the active LLM provider from environment

    Priority:
    1. Explicit LLM_PROVIDER env var
    2. If GEMINI_API_KEY is set, use Gemini
    3. Default to Ollama (local)
    """
    provider_env = os.getenv("LLM_PROVIDER", "").lower()

    if provider_env == "ollama":
        return LLMProviderType.OLLAMA
    elif provider_env == "gemini":
        return LLMProviderType.GEMINI

    if os.getenv("GEMINI_API_KEY"):
        return LLMProviderType.GEMINI

    return LLMProviderType.OLLAMA


@dataclass
class ModelConfig:
    """Configuration for a single model step"""
    model_name: str  # Gemini model name
    ollama_model: Optional[str] = None
    temperature: float = 0.4
    max_tokens: Optional[int] = None
    description: str = ""

    def get_model_for_provider(self, provider) -> str:
        """Model name for a provider (an LLMProviderType or its string value)"""
        if getattr(provider, "value", provider) == LLMProviderType.OLLAMA.value:
            return self.ollama_model or DEFAULT_OLLAMA_VISION
        return self.model_name


DEFAULT_OLLAMA_VISION = "gemma3:12b"

PIPELINE_MODELS: Dict[str, ModelConfig] = {
    "unit_analysis": ModelConfig(
        model_name=os.getenv("ANALYSIS_MODEL", "gemini-2.5-flash"),
        ollama_model=os.getenv("OLLAMA_ANALYSIS_MODEL", DEFAULT_OLLAMA_VISION),
        temperature=0.2,
        max_tokens=1024,
        description="Describes a single video segment or image for accessibility",
    ),
    "narrative": ModelConfig(
        model_name=os.getenv("NARRATIVE_MODEL", "gemini-flash-lite-latest"),
        ollama_model=os.getenv("OLLAMA_NARRATIVE_MODEL", "gemma3:4b"),
        temperature=0.7,
        max_tokens=2048,
        description="Rewrites concatenated unit descriptions into a flowing narrative",
    ),
}


def get_model_config(step: str) -> ModelConfig:
    """Get the model configuration for a pipeline step

    Raises:
        KeyError: If the step has no model configured
    """
    return PIPELINE_MODELS[step]


def get_model_name(step: str, provider: Optional[LLMProviderType] = None) -> str:
    """Resolve the model name for a step on the given (or active) provider"""
    return get_model_config(step).get_model_for_provider(provider or get_active_provider())
