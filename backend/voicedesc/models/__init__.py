"""
Data models for jobs, units, analyses and synthesized descriptions.
"""

from .jobs import (
    Chapter,
    Job,
    JobError,
    KeyMoment,
    MediaInput,
    SynthesisMetadata,
    SynthesizedDescription,
    Unit,
    UnitAnalysis,
)
from .options import BatchOptions, JobOptions, SynthesisOptions
from .status import JobStatus, PipelineStep, STEP_PROGRESS

__all__ = [
    "Chapter",
    "Job",
    "JobError",
    "KeyMoment",
    "MediaInput",
    "SynthesisMetadata",
    "SynthesizedDescription",
    "Unit",
    "UnitAnalysis",
    "BatchOptions",
    "JobOptions",
    "SynthesisOptions",
    "JobStatus",
    "PipelineStep",
    "STEP_PROGRESS",
]
