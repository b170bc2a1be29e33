"""
Gemini LLM Provider

Implementation of LLMProvider for Google's Gemini models via google-genai.
"""

import asyncio
import os
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from voicedesc.core.exceptions import ProviderError

from .base import (
    LLMConfig,
    LLMProvider,
    LLMResponse,
    Prompt,
    ProviderType,
    UsageStats,
    is_retryable_status,
)


class GeminiProvider(LLMProvider):
    """Google Gemini LLM Provider (multimodal)"""

    provider_type = ProviderType.GEMINI

    AVAILABLE_MODELS = [
        "gemini-2.5-flash",
        "gemini-2.5-pro",
        "gemini-flash-lite-latest",
        "gemini-2.0-flash",
    ]

    DEFAULT_MODEL = "gemini-2.5-flash"

    def __init__(self, api_key: Optional[str] = None, client: Any = None):
        """Initialize Gemini provider

        Args:
            api_key: Gemini API key. If not provided, uses GEMINI_API_KEY env var
            client: Pre-built ``genai.Client`` (mainly for tests)
        """
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.client = client
        if self.client is None and self.api_key:
            self.client = genai.Client(api_key=self.api_key)

    def is_available(self) -> bool:
        return self.client is not None

    def list_models(self) -> List[str]:
        return self.AVAILABLE_MODELS.copy()

    def _build_generation_config(self, config: LLMConfig) -> Optional[types.GenerateContentConfig]:
        kwargs: Dict[str, Any] = {}
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.max_tokens:
            kwargs["max_output_tokens"] = config.max_tokens
        if config.system_instruction:
            kwargs["system_instruction"] = config.system_instruction
        if config.response_schema:
            kwargs["response_mime_type"] = "application/json"
            kwargs["response_schema"] = config.response_schema
        return types.GenerateContentConfig(**kwargs) if kwargs else None

    @staticmethod
    def _build_contents(prompt: Prompt) -> Any:
        if isinstance(prompt, str):
            return prompt
        contents: List[Any] = []
        for part in prompt:
            if isinstance(part, dict) and "data" in part:
                contents.append(types.Part.from_bytes(data=part["data"], mime_type=part["mime_type"]))
            else:
                contents.append(part)
        return contents

    @staticmethod
    def _extract_usage(response: Any) -> Optional[UsageStats]:
        usage = getattr(response, "usage_metadata", None)
        if not usage:
            return None
        return UsageStats(
            input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        )

    async def generate(
        self,
        prompt: Prompt,
        config: Optional[LLMConfig] = None,
        **kwargs
    ) -> LLMResponse:
        if not self.is_available():
            raise ProviderError("Gemini provider is not available. Check API key.", retryable=False)

        if config is None:
            config = LLMConfig(model=kwargs.get("model", self.DEFAULT_MODEL))
        model = kwargs.get("model", config.model)

        request_kwargs: Dict[str, Any] = {
            "model": model,
            "contents": self._build_contents(prompt),
        }
        generation_config = self._build_generation_config(config)
        if generation_config:
            request_kwargs["config"] = generation_config

        try:
            response = await asyncio.to_thread(self.client.models.generate_content, **request_kwargs)
        except genai_errors.APIError as e:
            raise ProviderError(
                f"Gemini request failed: {e}",
                retryable=is_retryable_status(getattr(e, "code", None)),
                detail={"status": getattr(e, "code", None), "model": model},
            ) from e

        return LLMResponse(
            text=response.text.strip() if response.text else "",
            model=model,
            provider=self.provider_type,
            usage=self._extract_usage(response),
            raw_response=response,
        )
