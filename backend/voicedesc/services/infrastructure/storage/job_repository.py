"""
Job repository - Abstract data access for job records.

Implements the Repository pattern to decouple job persistence from the
orchestration logic. Repositories only store and swap whole records; the
invariants of the job state machine are enforced one level up, in
``JobStore``.

Classes:
    JobRepository: Abstract interface for job record persistence
    InMemoryJobRepository: Dict-backed implementation (tests, single process)
    FileBasedJobRepository: One JSON file per job with a bounded RAM cache
"""

import json
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional

from voicedesc.core.exceptions import InfrastructureError
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import Job

logger = get_logger(__name__, component="job_repository")


class JobRepository(ABC):
    """
    Abstract repository for job records.

    Records are immutable snapshots. ``compare_and_set`` is the only way to
    replace a stored record, which lets callers detect concurrent writers.
    """

    @abstractmethod
    def insert(self, job: Job) -> None:
        """
        Store a brand-new job.

        Args:
            job: Record to store

        Raises:
            InfrastructureError: If a job with the same id already exists
        """

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        """
        Retrieve a job by ID.

        Args:
            job_id: Unique job identifier

        Returns:
            The current record if found, None otherwise
        """

    @abstractmethod
    def compare_and_set(self, job: Job, expected_version: int) -> bool:
        """
        Replace the stored record only if its version is unchanged.

        Args:
            job: Replacement record (already carrying its new version)
            expected_version: Version the caller read before computing ``job``

        Returns:
            True if the record was replaced, False if another writer got there first
        """

    @abstractmethod
    def list_all(self) -> List[Job]:
        """
        List all jobs.

        Returns:
            All stored records, ordered by job id
        """

    @abstractmethod
    def delete(self, job_id: str) -> Optional[Job]:
        """
        Delete a job.

        Returns:
            The deleted record, or None if it did not exist
        """


class InMemoryJobRepository(JobRepository):
    """Process-local repository backed by a dict."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = RLock()

    def insert(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise InfrastructureError(f"Job {job.id} already exists")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def compare_and_set(self, job: Job, expected_version: int) -> bool:
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None or current.version != expected_version:
                return False
            self._jobs[job.id] = job
            return True

    def list_all(self) -> List[Job]:
        with self._lock:
            return [self._jobs[job_id] for job_id in sorted(self._jobs)]

    def delete(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.pop(job_id, None)


class FileBasedJobRepository(JobRepository):
    """Disk-first repository: one JSON file per job plus a bounded RAM cache.

    Terminal jobs are evicted from the cache first; active jobs stay cached
    so that the hot path of ``advance`` never touches the disk for reads.
    """

    def __init__(self, storage_dir: Path, cache_limit: int = 200):
        self._storage_dir = Path(storage_dir)
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        self._cache_limit = cache_limit
        self._jobs: Dict[str, Job] = {}
        self._known_job_ids: set[str] = set()
        self._lock = RLock()
        self._index_jobs()

    def _index_jobs(self) -> None:
        """Build an index of known jobs from disk without loading full payloads."""
        with self._lock:
            self._known_job_ids = {job_file.stem for job_file in self._storage_dir.glob("*.json")}

    def _job_file(self, job_id: str) -> Path:
        return self._storage_dir / f"{job_id}.json"

    def _load_job_from_disk(self, job_id: str) -> Optional[Job]:
        job_file = self._job_file(job_id)
        if not job_file.exists():
            return None
        try:
            with open(job_file, "r", encoding="utf-8") as f:
                return Job.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load job file", extra={"path": str(job_file), "error": str(e)})
            return None

    def _save_job(self, job: Job) -> None:
        """Write the record atomically (temp file + rename)."""
        job_file = self._job_file(job.id)
        tmp_file = job_file.with_suffix(".json.tmp")
        try:
            payload = json.dumps(job.to_dict(), indent=2, ensure_ascii=False)
            with open(tmp_file, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_file, job_file)
        except (OSError, TypeError, ValueError) as e:
            tmp_file.unlink(missing_ok=True)
            raise InfrastructureError(f"Failed to save job {job.id}: {e}") from e
        self._known_job_ids.add(job.id)

    @staticmethod
    def _sort_key_updated(job: Job) -> datetime:
        try:
            return datetime.fromisoformat(job.updated_at)
        except ValueError:
            return datetime.min

    def _prune_cache(self) -> None:
        if len(self._jobs) <= self._cache_limit:
            return
        evictable_ids = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal()]
        evictable_ids.sort(key=lambda j: self._sort_key_updated(self._jobs[j]))
        while len(self._jobs) > self._cache_limit and evictable_ids:
            self._jobs.pop(evictable_ids.pop(0), None)

    def _cache_job(self, job: Job) -> None:
        self._jobs[job.id] = job
        self._prune_cache()

    def _current(self, job_id: str) -> Optional[Job]:
        cached = self._jobs.get(job_id)
        if cached:
            return cached
        if job_id not in self._known_job_ids:
            return None
        job = self._load_job_from_disk(job_id)
        if job is None:
            self._known_job_ids.discard(job_id)
            return None
        self._cache_job(job)
        return job

    def insert(self, job: Job) -> None:
        with self._lock:
            if self._current(job.id) is not None:
                raise InfrastructureError(f"Job {job.id} already exists")
            self._save_job(job)
            self._cache_job(job)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._current(job_id)

    def compare_and_set(self, job: Job, expected_version: int) -> bool:
        with self._lock:
            current = self._current(job.id)
            if current is None or current.version != expected_version:
                return False
            self._save_job(job)
            self._cache_job(job)
            return True

    def list_all(self) -> List[Job]:
        with self._lock:
            job_ids = sorted(self._known_job_ids)
        jobs: List[Job] = []
        for job_id in job_ids:
            job = self.get(job_id)
            if job:
                jobs.append(job)
        return jobs

    def delete(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._current(job_id)
            self._jobs.pop(job_id, None)
            self._known_job_ids.discard(job_id)
            job_file = self._job_file(job_id)
            if job_file.exists():
                job_file.unlink()
            return job
