"""
Job status and pipeline step enumerations.

Centralized definitions of the job state machine:

    pending -> processing(upload -> segmentation -> analysis -> synthesis) -> completed
                         \\-> failed (from any processing step)
"""

from enum import Enum


class JobStatus(Enum):
    """Enumeration of all possible job statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Check if this status is a terminal state (no further progress)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in _ALLOWED_STATUS_TRANSITIONS[self]


_ALLOWED_STATUS_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: {JobStatus.COMPLETED},
    JobStatus.FAILED: {JobStatus.FAILED},
}


class PipelineStep(Enum):
    """Ordered pipeline steps. Steps never move backwards."""

    UPLOAD = "upload"
    SEGMENTATION = "segmentation"
    ANALYSIS = "analysis"
    SYNTHESIS = "synthesis"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return _STEP_ORDER.index(self)

    def __lt__(self, other: "PipelineStep") -> bool:
        if not isinstance(other, PipelineStep):
            return NotImplemented
        return self.order < other.order

    def __le__(self, other: "PipelineStep") -> bool:
        if not isinstance(other, PipelineStep):
            return NotImplemented
        return self.order <= other.order


_STEP_ORDER = [
    PipelineStep.UPLOAD,
    PipelineStep.SEGMENTATION,
    PipelineStep.ANALYSIS,
    PipelineStep.SYNTHESIS,
    PipelineStep.COMPLETED,
]


# Progress milestones reported when a step is entered
STEP_PROGRESS = {
    PipelineStep.UPLOAD: 10.0,
    PipelineStep.SEGMENTATION: 15.0,
    PipelineStep.ANALYSIS: 40.0,
    PipelineStep.SYNTHESIS: 85.0,
    PipelineStep.COMPLETED: 100.0,
}

# Upper bound for progress while waiting on segmentation
SEGMENTATION_PROGRESS_CAP = 35.0
SEGMENTATION_PROGRESS_STEP = 5.0
# Progress reached once every unit has been analyzed
ANALYSIS_PROGRESS_END = 80.0


__all__ = [
    "JobStatus",
    "PipelineStep",
    "STEP_PROGRESS",
    "SEGMENTATION_PROGRESS_CAP",
    "SEGMENTATION_PROGRESS_STEP",
    "ANALYSIS_PROGRESS_END",
]
