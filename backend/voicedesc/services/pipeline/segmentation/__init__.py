from .base import DetectedSegment, Segmenter, SegmentationStrategy
from .local import LocalChunkingStrategy
from .managed import ManagedSegmentationStrategy, normalize_segments
from .selector import select_strategy

__all__ = [
    "DetectedSegment",
    "Segmenter",
    "SegmentationStrategy",
    "LocalChunkingStrategy",
    "ManagedSegmentationStrategy",
    "normalize_segments",
    "select_strategy",
]
