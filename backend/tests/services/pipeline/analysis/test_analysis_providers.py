"""
Tests for voicedesc.services.pipeline.analysis.providers
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from voicedesc.config.models import get_model_config
from voicedesc.core.exceptions import ProviderError
from voicedesc.models.jobs import MediaInput, Unit
from voicedesc.services.llm.base import LLMResponse, ProviderType, UsageStats
from voicedesc.services.pipeline.analysis.providers import LLMAnalysisProvider, build_prompt

UNIT = Unit(id="job_chunk_0", start_offset=10.0, end_offset=20.0)
VIDEO = MediaInput(ref="clip.mp4", duration=60.0, mime_type="video/mp4")

JSON_ANSWER = (
    '{"description": "A woman waters plants on a balcony.", '
    '"visual_elements": ["woman", "plants", "balcony"], '
    '"actions": ["watering"], "context": "A sunny balcony", "confidence": 0.85}'
)


@pytest.fixture
def mock_llm():
    llm = MagicMock()
    llm.provider_type = ProviderType.GEMINI
    llm.generate = AsyncMock(
        return_value=LLMResponse(
            text=JSON_ANSWER,
            model="gemini-2.5-flash",
            provider=ProviderType.GEMINI,
            usage=UsageStats(input_tokens=900, output_tokens=100),
        )
    )
    return llm


class TestBuildPrompt:
    def test_video_prompt_names_time_span(self):
        prompt = build_prompt(UNIT, VIDEO)

        assert "video segment from 0:10 to 0:20" in prompt

    def test_image_prompt(self):
        prompt = build_prompt(Unit("i", 0.0, 0.0), MediaInput(ref="a.png", kind="image"))

        assert "Describe the image shown" in prompt


@pytest.mark.asyncio
class TestLLMAnalysisProvider:
    """Test suite for LLMAnalysisProvider.analyze"""

    async def test_parses_json_answer(self, mock_llm):
        provider = LLMAnalysisProvider(mock_llm)

        analysis = await provider.analyze(UNIT, VIDEO)

        assert analysis.unit_id == "job_chunk_0"
        assert analysis.description == "A woman waters plants on a balcony."
        assert analysis.visual_elements == ("woman", "plants", "balcony")
        assert analysis.actions == ("watering",)
        assert analysis.confidence == 0.85
        assert analysis.provider_cost == 1000.0

    async def test_uses_step_model_config(self, mock_llm):
        provider = LLMAnalysisProvider(mock_llm)

        await provider.analyze(UNIT, VIDEO)

        config = mock_llm.generate.call_args.kwargs["config"]
        step = get_model_config("unit_analysis")
        assert config.model == step.model_name
        assert config.temperature == step.temperature

    async def test_ollama_model_selected_for_ollama(self, mock_llm):
        mock_llm.provider_type = ProviderType.OLLAMA

        provider = LLMAnalysisProvider(mock_llm)

        assert provider.config.model == get_model_config("unit_analysis").ollama_model

    async def test_text_only_without_loader(self, mock_llm):
        await LLMAnalysisProvider(mock_llm).analyze(UNIT, VIDEO)

        prompt = mock_llm.generate.call_args.args[0]
        assert isinstance(prompt, str)
        assert "Source: clip.mp4" in prompt

    async def test_loader_bytes_are_sent_as_part(self, mock_llm):
        loader = AsyncMock(return_value=b"\x00\x01")
        provider = LLMAnalysisProvider(mock_llm, content_loader=loader)

        await provider.analyze(UNIT, VIDEO)

        loader.assert_awaited_once_with(UNIT, VIDEO)
        parts = mock_llm.generate.call_args.args[0]
        assert parts[0] == {"mime_type": "video/mp4", "data": b"\x00\x01"}
        assert isinstance(parts[1], str)

    async def test_missing_content_is_not_retryable(self, mock_llm):
        provider = LLMAnalysisProvider(mock_llm, content_loader=AsyncMock(return_value=None))

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze(UNIT, VIDEO)

        assert exc_info.value.retryable is False
        mock_llm.generate.assert_not_called()

    async def test_empty_response_is_retryable(self, mock_llm):
        mock_llm.generate.return_value = LLMResponse(text="", model="m", provider=ProviderType.GEMINI)

        with pytest.raises(ProviderError) as exc_info:
            await LLMAnalysisProvider(mock_llm).analyze(UNIT, VIDEO)

        assert exc_info.value.retryable is True
