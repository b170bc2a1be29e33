"""
Base classes for LLM providers

Defines the abstract interface that the analysis and narrative steps use,
so they never depend on a specific backend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ProviderType(str, Enum):
    """Supported LLM providers"""
    GEMINI = "gemini"
    OLLAMA = "ollama"


@dataclass
class LLMConfig:
    """Configuration for an LLM request"""
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    response_schema: Optional[Dict[str, Any]] = None  # For structured output
    system_instruction: Optional[str] = None

    # Provider-specific options
    extra_options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UsageStats:
    """Token usage statistics"""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        if self.total_tokens == 0:
            self.total_tokens = self.input_tokens + self.output_tokens


@dataclass
class LLMResponse:
    """Unified response from any LLM provider"""
    text: str
    model: str
    provider: ProviderType
    usage: Optional[UsageStats] = None
    raw_response: Any = None  # Original response object from the provider


# A prompt is either plain text or a list of parts. Binary parts are dicts:
#     {"mime_type": "image/jpeg", "data": b"..."}
Prompt = Union[str, List[Any]]


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    provider_type: ProviderType

    @abstractmethod
    async def generate(
        self,
        prompt: Prompt,
        config: Optional[LLMConfig] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from the LLM

        Args:
            prompt: The prompt text or list of content parts (for multimodal)
            config: LLM configuration options
            **kwargs: Additional provider-specific options

        Returns:
            LLMResponse with the generated text and metadata

        Raises:
            ProviderError: The call failed; ``retryable`` tells whether repeating may help
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is available and properly configured"""

    @abstractmethod
    def list_models(self) -> List[str]:
        """List available models for this provider"""

    @property
    def name(self) -> str:
        return self.provider_type.value


def split_prompt(prompt: Prompt) -> tuple:
    """Split a prompt into (text, binary_parts)."""
    if isinstance(prompt, str):
        return prompt, []
    texts: List[str] = []
    blobs: List[Dict[str, Any]] = []
    for part in prompt:
        if isinstance(part, dict) and "data" in part:
            blobs.append(part)
        else:
            texts.append(str(part))
    return "\n\n".join(texts), blobs


# HTTP statuses worth retrying; any other 4xx is a caller error
RETRYABLE_STATUS_CODES = {408, 409, 425, 429}


def is_retryable_status(status_code: Optional[int]) -> bool:
    if status_code is None:
        return True
    if status_code in RETRYABLE_STATUS_CODES:
        return True
    return not 400 <= status_code < 500
