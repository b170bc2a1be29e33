"""
Narrative enhancement: optional rewrite of the per-unit descriptions into
one flowing text by a language model.
"""

from abc import ABC, abstractmethod
from typing import Optional

from voicedesc.config.models import get_model_config
from voicedesc.services.llm.base import LLMConfig, LLMProvider

NARRATIVE_PROMPT = """Create a flowing, narrative description from these video segments:

{segments}

Requirements:
- Create smooth transitions between segments
- Maintain chronological flow
- Use engaging, descriptive language
- Avoid repetition
- Keep it concise but comprehensive
{length_hint}"""

NARRATIVE_SYSTEM = (
    "You write audio descriptions for blind and low-vision audiences. "
    "Describe only what is visible; never invent details."
)


class NarrativeEnhancer(ABC):
    @abstractmethod
    async def enhance(self, text: str, target_length: Optional[int] = None) -> str:
        """Rewrite ``text`` (unit descriptions separated by blank lines) for flow."""


class LLMNarrativeEnhancer(NarrativeEnhancer):
    def __init__(self, llm: LLMProvider, model: Optional[str] = None):
        step = get_model_config("narrative")
        self.llm = llm
        self.config = LLMConfig(
            model=model or step.get_model_for_provider(llm.provider_type),
            temperature=step.temperature,
            max_tokens=step.max_tokens,
            system_instruction=NARRATIVE_SYSTEM,
        )

    async def enhance(self, text: str, target_length: Optional[int] = None) -> str:
        length_hint = f"- Target length: about {target_length} characters" if target_length else ""
        prompt = NARRATIVE_PROMPT.format(segments=text, length_hint=length_hint).rstrip()
        response = await self.llm.generate(prompt, config=self.config)
        return response.text
