"""
Job Store - the single owner of job record mutation.

Every write goes through ``JobStore.update``: read the current record,
compute a replacement with a pure transform, then swap it in only if
nobody else wrote in between. A lost race re-reads and re-runs the
transform, which may decide there is nothing left to do.
"""

from datetime import datetime
from typing import Callable, List, Optional

from voicedesc.core.exceptions import (
    ConcurrentUpdateError,
    InvalidTransition,
    JobNotFoundError,
)
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import Job, JobError
from voicedesc.models.status import JobStatus
from voicedesc.services.infrastructure.storage.job_repository import (
    InMemoryJobRepository,
    JobRepository,
)

logger = get_logger(__name__, component="job_store")

# Returns the replacement record, or None (or the same record) for a no-op
JobTransform = Callable[[Job], Optional[Job]]


def validate_job(job: Job) -> None:
    """Check the invariants that hold for every stored record."""
    if not 0.0 <= job.progress <= 100.0:
        raise InvalidTransition(f"progress out of range: {job.progress}")
    if job.result is not None and job.error is not None:
        raise InvalidTransition("result and error are mutually exclusive")
    if (job.result is not None) != (job.status is JobStatus.COMPLETED):
        raise InvalidTransition("a result is present exactly when the job is completed")
    if (job.error is not None) != (job.status is JobStatus.FAILED):
        raise InvalidTransition("an error is present exactly when the job is failed")
    if job.analyses:
        order = {unit.id: i for i, unit in enumerate(job.units or ())}
        positions = [order.get(analysis.unit_id) for analysis in job.analyses]
        if None in positions:
            raise InvalidTransition("analysis references an unknown unit")
        if positions != sorted(set(positions)):
            raise InvalidTransition("analyses must follow unit order without duplicates")


def validate_transition(current: Job, proposed: Job) -> None:
    """Check that ``proposed`` is a legal successor of ``current``."""
    if proposed.id != current.id:
        raise InvalidTransition("job id cannot change")
    if not current.status.can_transition_to(proposed.status):
        raise InvalidTransition(
            f"illegal status change {current.status.value} -> {proposed.status.value}"
        )
    if proposed.step < current.step:
        raise InvalidTransition(
            f"step cannot move backwards ({current.step.value} -> {proposed.step.value})"
        )
    if proposed.status is not JobStatus.FAILED:
        if proposed.progress < current.progress:
            raise InvalidTransition("progress cannot decrease")
        if current.step < proposed.step and proposed.progress <= current.progress:
            raise InvalidTransition("progress must increase when the step advances")
    if current.units is not None and proposed.units != current.units:
        raise InvalidTransition("units are immutable once produced")
    kept = {analysis.unit_id for analysis in proposed.analyses}
    if any(analysis.unit_id not in kept for analysis in current.analyses):
        raise InvalidTransition("completed analyses cannot be discarded")
    validate_job(proposed)


class JobStore:
    """Owns job records; hands out immutable snapshots."""

    def __init__(self, repository: Optional[JobRepository] = None, max_retries: int = 10):
        self._repository = repository or InMemoryJobRepository()
        self._max_retries = max_retries

    def create(self, job: Job) -> Job:
        validate_job(job)
        self._repository.insert(job)
        logger.info("Job created", extra={"job": job.id, "strategy": job.strategy})
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._repository.get(job_id)

    def require(self, job_id: str) -> Job:
        job = self._repository.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found", {"job_id": job_id})
        return job

    def update(self, job_id: str, transform: JobTransform) -> Job:
        """Apply ``transform`` atomically and return the stored record.

        Raises:
            JobNotFoundError: Unknown job id
            InvalidTransition: The transform produced an illegal record
            ConcurrentUpdateError: Every retry lost the race
        """
        for attempt in range(1, self._max_retries + 1):
            current = self.require(job_id)
            proposed = transform(current)
            if proposed is None or proposed is current:
                return current

            validate_transition(current, proposed)
            replacement = proposed.evolve(
                version=current.version + 1,
                updated_at=datetime.now().isoformat(),
            )
            if self._repository.compare_and_set(replacement, current.version):
                return replacement

            logger.debug(
                "Concurrent update detected, retrying",
                extra={"job": job_id, "attempt": attempt},
            )

        raise ConcurrentUpdateError(
            f"Job {job_id} kept changing during update",
            {"job_id": job_id, "attempts": self._max_retries},
        )

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        jobs = self._repository.list_all()
        if status is None:
            return jobs
        return [job for job in jobs if job.status is status]

    def delete(self, job_id: str) -> Optional[Job]:
        return self._repository.delete(job_id)

    def get_interrupted_jobs(self) -> List[Job]:
        """Jobs that were mid-pipeline when the process stopped."""
        return self.list_jobs(JobStatus.PROCESSING)

    def mark_interrupted_jobs_failed(self) -> List[Job]:
        """Fail every interrupted job; partial units and analyses are kept."""

        def _fail(job: Job) -> Optional[Job]:
            if job.status is not JobStatus.PROCESSING:
                return None
            return job.evolve(
                status=JobStatus.FAILED,
                message="Job was interrupted by a restart",
                error=JobError(
                    code="INTERRUPTED",
                    message="Job was interrupted by a restart",
                    detail={"step": job.step.value},
                ),
            )

        failed = [self.update(job.id, _fail) for job in self.get_interrupted_jobs()]
        if failed:
            logger.warning("Marked interrupted jobs failed", extra={"count": len(failed)})
        return failed
