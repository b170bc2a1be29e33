"""
Batch Concurrency Controller

Runs many independent inputs under a bounded worker pool. Items acquire
the pool in input order, so with a limit of 1 they also run in input
order. Under fail-fast, the first failure stops any item that has not
started yet; items already running are allowed to finish.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from voicedesc.core.exceptions import PipelineError, ValidationError, error_code
from voicedesc.core.logging import get_logger, reset_batch_id, set_batch_id
from voicedesc.models.jobs import Job, MediaInput
from voicedesc.models.options import BatchOptions, JobOptions
from voicedesc.models.status import JobStatus

from .orchestrator import PipelineOrchestrator

logger = get_logger(__name__, component="batch")

T = TypeVar("T")


@dataclass(frozen=True)
class ItemSuccess:
    item_id: str
    index: int
    value: Any
    duration: float


@dataclass(frozen=True)
class ItemFailure:
    item_id: str
    index: int
    code: str
    error: str
    duration: float


@dataclass(frozen=True)
class TimingAnalysis:
    fastest: float
    slowest: float
    median: float
    average: float

    @classmethod
    def from_durations(cls, durations: Sequence[float]) -> Optional["TimingAnalysis"]:
        if not durations:
            return None
        times = sorted(durations)
        return cls(
            fastest=times[0],
            slowest=times[-1],
            median=times[len(times) // 2],
            average=sum(times) / len(times),
        )


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a batch. ``successes``, ``failures`` and ``skipped`` are in input order.

    Every input lands in exactly one bucket; ``skipped`` is only non-empty
    after a fail-fast abort.
    """
    batch_id: str
    total: int
    successes: Tuple[ItemSuccess, ...]
    failures: Tuple[ItemFailure, ...]
    skipped: Tuple[str, ...]
    aborted: bool
    first_failure: Optional[ItemFailure]
    total_duration: float
    timing: Optional[TimingAnalysis]

    @property
    def processed(self) -> int:
        return len(self.successes)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": list(self.skipped),
            "aborted": self.aborted,
            "failures": [
                {"item_id": f.item_id, "code": f.code, "error": f.error, "duration": f.duration}
                for f in self.failures
            ],
            "total_duration": self.total_duration,
            "timing": None if self.timing is None else {
                "fastest": self.timing.fastest,
                "slowest": self.timing.slowest,
                "median": self.timing.median,
                "average": self.timing.average,
            },
        }


def _coerce_batch_options(options: Union[BatchOptions, Dict[str, Any], None]) -> BatchOptions:
    if options is None:
        return BatchOptions()
    if isinstance(options, BatchOptions):
        return options
    try:
        return BatchOptions.model_validate(options)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid batch options",
            {"errors": [err["msg"] for err in e.errors()]},
        ) from e


class BatchController(Generic[T]):
    def __init__(self, options: Union[BatchOptions, Dict[str, Any], None] = None):
        self.options = _coerce_batch_options(options)

    async def run(
        self,
        items: Sequence[Tuple[str, T]],
        worker: Callable[[T], Awaitable[Any]],
        batch_id: Optional[str] = None,
    ) -> BatchResult:
        """Process ``(item_id, payload)`` pairs with ``worker``."""
        batch_id = batch_id or uuid.uuid4().hex
        token = set_batch_id(batch_id)
        pool = asyncio.Semaphore(self.options.limit)
        abort = asyncio.Event()
        first_failure: List[ItemFailure] = []
        started = time.perf_counter()

        async def _run_one(index: int, item_id: str, payload: T):
            async with pool:
                if abort.is_set():
                    return ("skipped", index, item_id)
                item_started = time.perf_counter()
                try:
                    value = await worker(payload)
                except Exception as e:
                    failure = ItemFailure(
                        item_id=item_id,
                        index=index,
                        code=error_code(e),
                        error=str(e) or type(e).__name__,
                        duration=time.perf_counter() - item_started,
                    )
                    if not first_failure:
                        first_failure.append(failure)
                    logger.warning(
                        "Batch item failed",
                        extra={"item": item_id, "code": failure.code, "error": failure.error},
                    )
                    if self.options.fail_fast:
                        abort.set()
                    return ("failed", index, failure)
                success = ItemSuccess(
                    item_id=item_id,
                    index=index,
                    value=value,
                    duration=time.perf_counter() - item_started,
                )
                logger.debug("Batch item finished", extra={"item": item_id, "duration": success.duration})
                return ("ok", index, success)

        logger.info(
            "Batch started",
            extra={"items": len(items), "limit": self.options.limit, "fail_fast": self.options.fail_fast},
        )
        try:
            outcomes = await asyncio.gather(
                *(_run_one(i, item_id, payload) for i, (item_id, payload) in enumerate(items))
            )
        finally:
            reset_batch_id(token)

        outcomes = sorted(outcomes, key=lambda o: o[1])
        successes = tuple(o[2] for o in outcomes if o[0] == "ok")
        failures = tuple(o[2] for o in outcomes if o[0] == "failed")
        skipped = tuple(o[2] for o in outcomes if o[0] == "skipped")

        result = BatchResult(
            batch_id=batch_id,
            total=len(items),
            successes=successes,
            failures=failures,
            skipped=skipped,
            aborted=abort.is_set(),
            first_failure=first_failure[0] if first_failure else None,
            total_duration=time.perf_counter() - started,
            timing=TimingAnalysis.from_durations(
                [s.duration for s in successes] + [f.duration for f in failures]
            ),
        )
        logger.info(
            "Batch finished",
            extra={
                "batch": batch_id,
                "processed": result.processed,
                "failed": result.failed,
                "skipped": len(skipped),
                "aborted": result.aborted,
            },
        )
        return result


@dataclass(frozen=True)
class BatchItem:
    id: str
    media: MediaInput
    options: Union[JobOptions, Dict[str, Any], None] = None


class JobFailedError(PipelineError):
    """A batch item's job ended in ``failed``; carries the job's own error code."""

    def __init__(self, job: Job):
        error = job.error
        super().__init__(error.message if error else "Job failed", {"job_id": job.id})
        self.code = error.code if error else PipelineError.code
        self.job = job


async def process_media_batch(
    orchestrator: PipelineOrchestrator,
    items: Sequence[BatchItem],
    options: Union[BatchOptions, Dict[str, Any], None] = None,
    deadline: Optional[float] = None,
) -> BatchResult:
    """Create and drive one job per item under a shared concurrency limit.

    The same limit bounds the segment/analyze calls of all jobs together,
    so one job with many units cannot exceed it either.
    """
    controller: BatchController[BatchItem] = BatchController(options)
    limiter = asyncio.Semaphore(controller.options.limit)

    async def _process(item: BatchItem) -> Job:
        job_id = orchestrator.create(item.media, item.options)
        job = await orchestrator.run_until_complete(job_id, deadline=deadline, limiter=limiter)
        if job.status is JobStatus.FAILED:
            raise JobFailedError(job)
        return job

    return await controller.run([(item.id, item) for item in items], _process)
