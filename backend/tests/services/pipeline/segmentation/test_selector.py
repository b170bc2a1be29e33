"""
Tests for voicedesc.services.pipeline.segmentation.selector
"""

from unittest.mock import MagicMock

import pytest

from voicedesc.core.exceptions import ValidationError
from voicedesc.models.jobs import MediaInput
from voicedesc.models.options import JobOptions
from voicedesc.services.pipeline.segmentation.selector import select_strategy

MB = 1024 * 1024
BOTH = {"local": MagicMock(), "managed": MagicMock()}
LARGE_VIDEO = MediaInput(ref="film.mp4", size_bytes=200 * MB, duration=1800.0)


class TestSelectStrategy:
    """Test suite for select_strategy"""

    def test_explicit_choice_wins(self):
        assert select_strategy(LARGE_VIDEO, JobOptions(segmentation="local"), BOTH) == "local"
        small = MediaInput(ref="a.mp4", size_bytes=1, duration=1.0)
        assert select_strategy(small, JobOptions(segmentation="managed"), BOTH) == "managed"

    def test_explicit_choice_must_be_configured(self):
        with pytest.raises(ValidationError):
            select_strategy(LARGE_VIDEO, JobOptions(segmentation="managed"), {"local": MagicMock()})

    def test_auto_without_managed_service(self):
        assert select_strategy(LARGE_VIDEO, JobOptions(), {"local": MagicMock()}) == "local"

    def test_auto_large_input_uses_managed(self):
        assert select_strategy(LARGE_VIDEO, JobOptions(), BOTH) == "managed"

    @pytest.mark.parametrize(
        "media, options",
        [
            (MediaInput(ref="a.png", kind="image", size_bytes=50 * MB), JobOptions()),
            (MediaInput(ref="a.mp4", size_bytes=5 * MB, duration=600.0), JobOptions()),
            (MediaInput(ref="a.mp4", size_bytes=50 * MB, duration=30.0), JobOptions()),
            (LARGE_VIDEO, JobOptions(priority="high")),
        ],
    )
    def test_auto_prefers_local(self, media, options):
        assert select_strategy(media, options, BOTH) == "local"
