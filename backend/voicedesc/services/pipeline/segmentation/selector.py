"""
Segmentation strategy selection.

The strategy is picked once, when the job is created, and stored on the
job record; the orchestrator then only looks it up by name.
"""

from typing import Mapping

from voicedesc.core.exceptions import ValidationError
from voicedesc.models.jobs import MediaInput
from voicedesc.models.options import JobOptions

from .base import SegmentationStrategy

SMALL_INPUT_BYTES = 10 * 1024 * 1024
SHORT_INPUT_SECONDS = 60.0


def select_strategy(
    media: MediaInput,
    options: JobOptions,
    strategies: Mapping[str, SegmentationStrategy],
) -> str:
    """Return the name of the strategy to use for ``media``.

    An explicit choice in ``options`` wins. ``auto`` prefers local chunking
    for images, small or short inputs and high-priority jobs, and the
    managed service for everything else when one is configured.
    """
    if options.segmentation != "auto":
        if options.segmentation not in strategies:
            raise ValidationError(
                f"Segmentation strategy '{options.segmentation}' is not configured",
                {"available": sorted(strategies)},
            )
        return options.segmentation

    if "managed" not in strategies:
        return "local"
    if media.kind == "image" or options.priority == "high":
        return "local"
    if media.size_bytes < SMALL_INPUT_BYTES or (media.duration or 0) < SHORT_INPUT_SECONDS:
        return "local"
    return "managed"
