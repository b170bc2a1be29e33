"""
Ollama LLM Provider

Implementation of LLMProvider for local models served by Ollama.
Images are sent base64-encoded, which multimodal models such as
gemma3 and llava accept.
"""

import base64
import json
import os
from typing import Any, Dict, List, Optional

import httpx

from voicedesc.core.exceptions import ProviderError
from voicedesc.core.logging import get_logger

from .base import (
    LLMConfig,
    LLMProvider,
    LLMResponse,
    Prompt,
    ProviderType,
    UsageStats,
    is_retryable_status,
    split_prompt,
)

logger = get_logger(__name__, component="ollama")


class OllamaProvider(LLMProvider):
    """Ollama LLM Provider for local models"""

    provider_type = ProviderType.OLLAMA

    RECOMMENDED_MODELS = [
        "gemma3:12b",
        "gemma3:4b",
        "llava:13b",
        "qwen2.5vl:7b",
    ]

    DEFAULT_MODEL = "gemma3:12b"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama provider

        Args:
            base_url: Ollama server URL. Defaults to OLLAMA_HOST env or http://localhost:11434
            timeout: Request timeout in seconds (default 5 minutes for large models)
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = (base_url or os.getenv("OLLAMA_HOST", "http://localhost:11434")).rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._available_models: Optional[List[str]] = None

    def _installed_models(self, timeout: float) -> Optional[List[str]]:
        """Names from ``/api/tags``, or None when the server does not answer."""
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.get(f"{self.base_url}/api/tags")
        except httpx.HTTPError as e:
            logger.debug("Ollama server unreachable", extra={"base_url": self.base_url, "error": str(e)})
            return None
        if response.status_code != 200:
            return None
        return [m["name"] for m in response.json().get("models", [])]

    def is_available(self) -> bool:
        return self._installed_models(timeout=5.0) is not None

    def list_models(self) -> List[str]:
        """Installed models; the recommended vision models when the server is down."""
        if self._available_models is None:
            self._available_models = self._installed_models(timeout=10.0)
        return self._available_models or self.RECOMMENDED_MODELS

    @staticmethod
    def _build_options(config: LLMConfig) -> Optional[Dict[str, Any]]:
        options: Dict[str, Any] = {}
        if config.temperature is not None:
            options["temperature"] = config.temperature
        if config.max_tokens:
            options["num_predict"] = config.max_tokens
        options.update(config.extra_options)
        return options or None

    def _parse_response(self, data: Dict[str, Any], model: str) -> LLMResponse:
        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            usage = UsageStats(
                input_tokens=data.get("prompt_eval_count", 0),
                output_tokens=data.get("eval_count", 0),
            )
        return LLMResponse(
            text=data.get("response", "").strip(),
            model=model,
            provider=self.provider_type,
            usage=usage,
            raw_response=data,
        )

    async def generate(
        self,
        prompt: Prompt,
        config: Optional[LLMConfig] = None,
        **kwargs
    ) -> LLMResponse:
        if config is None:
            config = LLMConfig(model=kwargs.get("model", self.DEFAULT_MODEL))
        model = kwargs.get("model", config.model)
        text, blobs = split_prompt(prompt)

        payload: Dict[str, Any] = {"model": model, "prompt": text, "stream": False}
        options = self._build_options(config)
        if options:
            payload["options"] = options
        if blobs:
            payload["images"] = [base64.b64encode(blob["data"]).decode("ascii") for blob in blobs]
        if config.system_instruction:
            payload["system"] = config.system_instruction
        if config.response_schema:
            payload["format"] = "json"
            payload["prompt"] += (
                f"\n\nRespond with valid JSON matching this schema: {json.dumps(config.response_schema)}"
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Ollama request failed: {e}",
                retryable=is_retryable_status(e.response.status_code),
                detail={"status": e.response.status_code, "model": model},
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Ollama request failed: {e}", detail={"model": model}) from e

        return self._parse_response(data, model)
