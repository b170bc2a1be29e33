from .batch import (
    BatchController,
    BatchItem,
    BatchResult,
    ItemFailure,
    ItemSuccess,
    JobFailedError,
    TimingAnalysis,
    process_media_batch,
)
from .job_store import JobStore, validate_job, validate_transition
from .lifecycle import build_orchestrator, get_orchestrator, startup
from .orchestrator import PipelineOrchestrator

__all__ = [
    "BatchController",
    "BatchItem",
    "BatchResult",
    "ItemFailure",
    "ItemSuccess",
    "JobFailedError",
    "TimingAnalysis",
    "process_media_batch",
    "JobStore",
    "validate_job",
    "validate_transition",
    "PipelineOrchestrator",
    "build_orchestrator",
    "get_orchestrator",
    "startup",
]
