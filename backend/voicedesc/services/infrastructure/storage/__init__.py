from .job_repository import FileBasedJobRepository, InMemoryJobRepository, JobRepository

__all__ = ["FileBasedJobRepository", "InMemoryJobRepository", "JobRepository"]
