"""
Local heuristic chunking.

Splits a video into fixed-length chunks sized from a byte budget and the
input's average bitrate, optionally aligned to scene-boundary hints.
Images always become a single unit.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from voicedesc.core.exceptions import EmptyInput, ValidationError
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import MediaInput, Unit

from .base import HandleCallback, ProgressCallback, SegmentationStrategy

logger = get_logger(__name__, component="chunking")

MIN_CHUNK_DURATION = 10.0

Span = Tuple[float, float]


def chunk_duration_for(media: MediaInput, target_bytes: int, max_duration: float) -> float:
    """Seconds of media that fit ``target_bytes`` at the input's average bitrate."""
    if not media.size_bytes or not media.duration:
        return max_duration
    bitrate = media.size_bytes * 8 / media.duration
    return min(max(target_bytes * 8 / bitrate, MIN_CHUNK_DURATION), max_duration)


def fixed_spans(duration: float, chunk: float, overlap: float) -> List[Span]:
    if overlap >= chunk:
        raise ValidationError(
            f"overlap ({overlap:g}s) must be smaller than the chunk duration ({chunk:g}s)"
        )
    spans: List[Span] = []
    start = 0.0
    while start < duration:
        end = min(start + chunk, duration)
        spans.append((start, end))
        if end >= duration:
            break
        start = end - overlap
    return spans


def boundary_spans(duration: float, boundaries: Sequence[float], chunk: float) -> List[Span]:
    """Group consecutive scenes into spans of at most ``chunk`` seconds where possible."""
    cuts = sorted({b for b in boundaries if 0 < b < duration})
    spans: List[Span] = []
    start = 0.0
    last_cut: Optional[float] = None
    for cut in [*cuts, duration]:
        if cut - start > chunk and last_cut is not None and last_cut > start:
            spans.append((start, last_cut))
            start = last_cut
        last_cut = cut
    spans.append((start, duration))

    # A single scene can still be longer than a chunk
    result: List[Span] = []
    for span_start, span_end in spans:
        if span_end - span_start > chunk:
            result.extend(
                (span_start + s, span_start + e)
                for s, e in fixed_spans(span_end - span_start, chunk, 0.0)
            )
        else:
            result.append((span_start, span_end))
    return result


class LocalChunkingStrategy(SegmentationStrategy):
    name = "local"

    def __init__(
        self,
        target_bytes: int = 5 * 1024 * 1024,
        max_duration: float = 30.0,
        overlap: float = 2.0,
    ):
        self.target_bytes = target_bytes
        self.max_duration = max_duration
        self.overlap = overlap

    def plan(self, job_id: str, media: MediaInput) -> List[Unit]:
        if media.kind == "image":
            return [Unit(id=f"{job_id}_image_0", start_offset=0.0, end_offset=0.0, size_bytes=media.size_bytes)]

        duration = media.duration or 0.0
        if duration <= 0:
            raise EmptyInput("Input has zero length; nothing to analyze", {"ref": media.ref})

        chunk = chunk_duration_for(media, self.target_bytes, self.max_duration)
        if media.boundaries:
            spans = boundary_spans(duration, media.boundaries, chunk)
        else:
            spans = fixed_spans(duration, chunk, self.overlap)

        units = [
            Unit(
                id=f"{job_id}_chunk_{i}",
                start_offset=round(start, 3),
                end_offset=round(end, 3),
                size_bytes=round(media.size_bytes * (end - start) / duration),
            )
            for i, (start, end) in enumerate(spans)
            if end > start
        ]
        if not units:
            raise EmptyInput("Chunking produced no units", {"ref": media.ref})

        logger.info(
            "Planned local chunks",
            extra={"chunks": len(units), "chunk_seconds": chunk, "aligned": bool(media.boundaries)},
        )
        return units

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
        return self.plan(job_id, media)
