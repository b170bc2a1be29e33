"""
Segmentation interfaces.

A ``Segmenter`` is the narrow contract of an external, asynchronous shot /
scene detection service. A ``SegmentationStrategy`` is what the
orchestrator talks to: it turns one media item into an ordered list of
units, whichever way it gets there.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from voicedesc.models.jobs import MediaInput, Unit
from voicedesc.services.infrastructure.polling.poller import PollStatus

HandleCallback = Callable[[str], Awaitable[None]]
ProgressCallback = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class DetectedSegment:
    """A raw segment as reported by a detection service (confidence 0-1)."""
    start: float
    end: float
    confidence: float
    kind: str = "shot"


class Segmenter(ABC):
    """External segmentation service."""

    @abstractmethod
    async def start(self, media: MediaInput) -> str:
        """Start detection and return an opaque operation handle."""

    @abstractmethod
    async def check_status(self, handle: str) -> PollStatus:
        """Report progress.

        Returns ``PollStatus.pending(payload)`` while running,
        ``PollStatus.succeeded(List[DetectedSegment])`` when done, or
        ``PollStatus.failed(reason)``.
        """


class SegmentationStrategy(ABC):
    """Produces the ordered units for one job."""

    name: str = ""

    @abstractmethod
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
        """Segment ``media`` into units covering the whole input.

        Args:
            job_id: Owning job, used to derive unit ids
            media: The input item
            handle: Handle of an operation started by an earlier call, if any
            on_started: Called with the handle of a newly started operation
            on_progress: Called with each intermediate progress payload
            cancel: Stops an in-flight wait when set

        Raises:
            SegmentationFailed: The provider reported failure
            EmptyInput: No units could be produced
        """
