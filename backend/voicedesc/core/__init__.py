"""
Core utilities: structured logging and the error taxonomy.
"""

from .exceptions import (
    AnalysisFailed,
    ConcurrentUpdateError,
    EmptyInput,
    InfrastructureError,
    InvalidTransition,
    JobNotFoundError,
    JobTimeout,
    NonRetryableProviderError,
    PipelineError,
    PollCancelled,
    PollTimeout,
    ProviderError,
    SegmentationFailed,
    SynthesisFailed,
    ValidationError,
    VoiceDescError,
    error_code,
    error_detail,
)
from .logging import (
    LogTimer,
    clear_context,
    get_logger,
    set_batch_id,
    set_job_id,
    setup_logging,
)

__all__ = [
    "AnalysisFailed",
    "ConcurrentUpdateError",
    "EmptyInput",
    "InfrastructureError",
    "InvalidTransition",
    "JobNotFoundError",
    "JobTimeout",
    "NonRetryableProviderError",
    "PipelineError",
    "PollCancelled",
    "PollTimeout",
    "ProviderError",
    "SegmentationFailed",
    "SynthesisFailed",
    "ValidationError",
    "VoiceDescError",
    "error_code",
    "error_detail",
    "LogTimer",
    "clear_context",
    "get_logger",
    "set_batch_id",
    "set_job_id",
    "setup_logging",
]
