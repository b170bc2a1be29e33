"""
Core Exceptions
Standardized exceptions for the description pipeline.

Every error carries a machine-readable ``code`` that ends up in the
job record when the error fails a job.
"""

from typing import Any, Dict, Optional


class VoiceDescError(Exception):
    """Base exception for all application errors."""

    code = "PROCESSING_FAILED"

    def __init__(self, message: str = "", detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = dict(detail or {})


class PipelineError(VoiceDescError):
    """Base exception for processing pipeline errors."""


class InfrastructureError(VoiceDescError):
    """Base exception for infrastructure errors (providers, storage, etc)."""


# --- Pipeline -----------------------------------------------------------

class ValidationError(PipelineError):
    """Bad input, rejected before any stage starts. Never retried."""

    code = "VALIDATION_ERROR"


class PollTimeout(PipelineError):
    """The poll deadline elapsed without a terminal result."""

    code = "POLL_TIMEOUT"

    def __init__(self, message: str, last_payload: Any = None, attempts: int = 0):
        super().__init__(message, {"last_payload": last_payload, "attempts": attempts})
        self.last_payload = last_payload
        self.attempts = attempts


class PollCancelled(PipelineError):
    """The poll was cancelled by its caller."""

    code = "POLL_CANCELLED"

    def __init__(self, message: str = "Polling cancelled", attempts: int = 0):
        super().__init__(message, {"attempts": attempts})
        self.attempts = attempts


class SegmentationFailed(PipelineError):
    code = "SEGMENTATION_FAILED"


class EmptyInput(PipelineError):
    """Segmentation produced no units."""

    code = "EMPTY_INPUT"


class AnalysisFailed(PipelineError):
    """A unit exhausted its retries while fail-fast is enabled."""

    code = "ANALYSIS_FAILED"

    def __init__(self, message: str, unit_id: Optional[str] = None, attempts: int = 0):
        super().__init__(message, {"unit_id": unit_id, "attempts": attempts})
        self.unit_id = unit_id
        self.attempts = attempts


class SynthesisFailed(PipelineError):
    code = "SYNTHESIS_FAILED"


class JobTimeout(PipelineError):
    """The overall job deadline passed before the job reached a terminal state."""

    code = "JOB_TIMEOUT"


# --- Infrastructure ------------------------------------------------------

class JobNotFoundError(InfrastructureError):
    code = "JOB_NOT_FOUND"


class ConcurrentUpdateError(InfrastructureError):
    """Compare-and-swap retries were exhausted for one job."""

    code = "CONCURRENT_UPDATE"


class InvalidTransition(InfrastructureError):
    """An update would break a job record invariant."""

    code = "INVALID_TRANSITION"


class ProviderError(InfrastructureError):
    """An external capability provider call failed."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        detail: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, detail)
        self.retryable = retryable


class NonRetryableProviderError(ProviderError):
    """A provider failure that repeating the call cannot fix (bad request, auth)."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, retryable=False, detail=detail)


def error_code(exc: BaseException) -> str:
    """Machine-readable code for any exception."""
    if isinstance(exc, VoiceDescError):
        return exc.code
    return VoiceDescError.code


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return repr(value)


def error_detail(exc: BaseException) -> Dict[str, Any]:
    """Detail dict for a job record; values that JSON cannot hold become their repr."""
    if isinstance(exc, VoiceDescError):
        detail = _json_safe(exc.detail)
    else:
        detail = {}
    detail.setdefault("type", type(exc).__name__)
    return detail
