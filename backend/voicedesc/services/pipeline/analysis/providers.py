"""
Analysis providers: the external vision/language capability behind the analyzer.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

from voicedesc.config.models import get_model_config
from voicedesc.core.exceptions import ProviderError
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import MediaInput, Unit, UnitAnalysis
from voicedesc.services.llm.base import LLMConfig, LLMProvider
from voicedesc.services.pipeline.synthesis.text_utils import format_timestamp

from .parsing import parse_analysis_text

logger = get_logger(__name__, component="analysis_provider")

# Loads the raw bytes for a unit (frames, clip or image) from storage
ContentLoader = Callable[[Unit, MediaInput], Awaitable[Optional[bytes]]]

ANALYSIS_PROMPT = """You are writing audio descriptions for blind and low-vision viewers.

Describe the {what} {span}.
Focus on what a viewer needs to follow along: people, objects, setting,
actions, and any on-screen text (quote it exactly, e.g. caption: "Welcome").

Respond with JSON only:
{{
  "description": "2-4 plain sentences",
  "visual_elements": ["short noun phrases"],
  "actions": ["verbs ending in -ing"],
  "context": "one sentence about the setting or purpose",
  "confidence": 0.0-1.0
}}"""


class AnalysisProvider(ABC):
    """External capability that describes one unit.

    Implementations raise ``ProviderError`` (optionally non-retryable) on
    failure; any other exception is treated as retryable.
    """

    @abstractmethod
    async def analyze(self, unit: Unit, media: MediaInput) -> UnitAnalysis:
        ...


def build_prompt(unit: Unit, media: MediaInput) -> str:
    if media.kind == "image":
        return ANALYSIS_PROMPT.format(what="image", span="shown")
    span = f"from {format_timestamp(unit.start_offset)} to {format_timestamp(unit.end_offset)}"
    return ANALYSIS_PROMPT.format(what="video segment", span=span)


class LLMAnalysisProvider(AnalysisProvider):
    """Describes units with a multimodal LLM (Gemini or a local Ollama model)."""

    def __init__(
        self,
        llm: LLMProvider,
        content_loader: Optional[ContentLoader] = None,
        model: Optional[str] = None,
    ):
        step = get_model_config("unit_analysis")
        self.llm = llm
        self.content_loader = content_loader
        self.config = LLMConfig(
            model=model or step.get_model_for_provider(llm.provider_type),
            temperature=step.temperature,
            max_tokens=step.max_tokens,
        )

    async def _contents(self, unit: Unit, media: MediaInput) -> Any:
        prompt = build_prompt(unit, media)
        if self.content_loader is None:
            return f"{prompt}\n\nSource: {media.ref}"
        data = await self.content_loader(unit, media)
        if not data:
            raise ProviderError(f"No content available for unit {unit.id}", retryable=False)
        parts: List[Any] = [
            {"mime_type": media.mime_type or "application/octet-stream", "data": data},
            prompt,
        ]
        return parts

    async def analyze(self, unit: Unit, media: MediaInput) -> UnitAnalysis:
        response = await self.llm.generate(await self._contents(unit, media), config=self.config)
        if not response.text:
            raise ProviderError(f"Empty analysis response for unit {unit.id}")

        fields = parse_analysis_text(response.text)
        cost = float(response.usage.total_tokens) if response.usage else 0.0
        logger.debug(
            "Analysis response parsed",
            extra={"unit": unit.id, "model": response.model, "total_tokens": cost},
        )
        return UnitAnalysis(
            unit_id=unit.id,
            description=fields["description"],
            visual_elements=tuple(fields["visual_elements"]),
            actions=tuple(fields["actions"]),
            context=fields["context"],
            confidence=fields["confidence"],
            provider_cost=cost,
            start_offset=unit.start_offset,
            end_offset=unit.end_offset,
        )
