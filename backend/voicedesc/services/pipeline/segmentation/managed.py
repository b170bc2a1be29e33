"""
Managed segmentation: delegate shot detection to an external service.

The service runs asynchronously; this strategy starts it (or resumes a
previously started operation from its handle), waits on it through the
poller, then normalizes the raw segments into units.
"""

import asyncio
from dataclasses import replace
from typing import List, Optional, Sequence

from voicedesc.core.exceptions import EmptyInput, SegmentationFailed
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import MediaInput, Unit
from voicedesc.services.infrastructure.polling.poller import AsyncOperationPoller, PollState

from .base import (
    DetectedSegment,
    HandleCallback,
    ProgressCallback,
    Segmenter,
    SegmentationStrategy,
)
from .local import fixed_spans

logger = get_logger(__name__, component="segmentation")


def normalize_segments(
    segments: Sequence[DetectedSegment],
    duration: Optional[float] = None,
    min_confidence: float = 0.8,
    merge_gap: float = 1.0,
) -> List[DetectedSegment]:
    """Filter, sort, merge and gap-fill raw detections.

    - drops detections below ``min_confidence`` or with an empty time range
    - merges same-kind neighbours separated by at most ``merge_gap`` seconds
    - stretches segments so the result covers [0, duration] with no gaps
    """
    kept = sorted(
        (
            s for s in segments
            if s.confidence >= min_confidence and s.end > s.start
        ),
        key=lambda s: (s.start, s.end),
    )
    if duration is not None:
        kept = [
            replace(s, end=min(s.end, duration)) for s in kept if s.start < duration
        ]

    merged: List[DetectedSegment] = []
    for segment in kept:
        if merged:
            previous = merged[-1]
            if segment.kind == previous.kind and segment.start - previous.end <= merge_gap:
                merged[-1] = replace(
                    previous,
                    end=max(previous.end, segment.end),
                    confidence=max(previous.confidence, segment.confidence),
                )
                continue
            if segment.end <= previous.end:
                continue
        merged.append(segment)

    if not merged:
        return []

    # A segment squeezed to zero length by a later one starting at the same
    # offset is dropped; its start carries over to the next segment.
    covered: List[DetectedSegment] = []
    cursor = 0.0
    for i, segment in enumerate(merged):
        if i + 1 < len(merged):
            end = merged[i + 1].start
        else:
            end = duration if duration is not None else segment.end
        if end > cursor:
            covered.append(replace(segment, start=cursor, end=end))
            cursor = end
    return covered


def to_units(job_id: str, segments: Sequence[DetectedSegment], media: MediaInput, max_duration: float) -> List[Unit]:
    """Convert normalized segments to units no longer than ``max_duration``."""
    total = media.duration or (segments[-1].end if segments else 0.0)
    units: List[Unit] = []
    for segment in segments:
        for start, end in fixed_spans(segment.end - segment.start, max_duration, 0.0):
            unit_start = segment.start + start
            unit_end = segment.start + end
            size = round(media.size_bytes * (unit_end - unit_start) / total) if total else 0
            units.append(
                Unit(
                    id=f"{job_id}_segment_{len(units)}",
                    start_offset=round(unit_start, 3),
                    end_offset=round(unit_end, 3),
                    confidence=segment.confidence,
                    size_bytes=size,
                )
            )
    return units


class ManagedSegmentationStrategy(SegmentationStrategy):
    name = "managed"

    def __init__(
        self,
        segmenter: Segmenter,
        poll_interval: float = 5.0,
        poll_deadline: float = 600.0,
        max_duration: float = 30.0,
        min_confidence: float = 0.8,
        merge_gap: float = 1.0,
    ):
        self.segmenter = segmenter
        self.poller = AsyncOperationPoller(interval=poll_interval, deadline=poll_deadline)
        self.max_duration = max_duration
        self.min_confidence = min_confidence
        self.merge_gap = merge_gap

    async def segment(
        self,
        job_id: str,
        media: MediaInput,
        *,
        handle: Optional[str] = None,
        on_started: Optional[HandleCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> List[Unit]:
        if handle is None:
            handle = await self.segmenter.start(media)
            logger.info("Started segmentation", extra={"operation": handle})
            if on_started is not None:
                await on_started(handle)
        else:
            logger.info("Resuming segmentation", extra={"operation": handle})

        outcome = await self.poller.poll(
            lambda: self.segmenter.check_status(handle),
            on_progress=on_progress,
            cancel=cancel,
        )
        if outcome.status.state is PollState.FAILED:
            raise SegmentationFailed(
                outcome.status.error or "Segmentation service reported failure",
                {"operation": handle, "attempts": outcome.attempts},
            )

        raw = list(outcome.status.result or [])
        segments = normalize_segments(raw, media.duration, self.min_confidence, self.merge_gap)
        units = to_units(job_id, segments, media, self.max_duration)
        logger.info(
            "Segmentation finished",
            extra={"detected": len(raw), "units": len(units), "attempts": outcome.attempts},
        )
        if not units:
            raise EmptyInput(
                "Segmentation produced no usable segments",
                {"operation": handle, "detected": len(raw)},
            )
        return units
