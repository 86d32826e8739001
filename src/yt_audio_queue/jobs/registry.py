"""In-memory registry of queued jobs."""

from __future__ import annotations

from collections.abc import Callable, Iterator

from yt_audio_queue.core.errors import DuplicateJobError, JobNotFoundError
from yt_audio_queue.jobs.job import Job, JobStatus


class JobRegistry:
    """Authoritative map of job id to job, in insertion order.

    Not thread-safe: only the queue's coordination thread touches it.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs.values()))

    def insert(self, job: Job) -> None:
        """Add a new job.

        Raises:
            DuplicateJobError: If the id is already registered.
        """
        if job.id in self._jobs:
            raise DuplicateJobError(job.id)
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def require(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list(self) -> list[Job]:
        return list(self._jobs.values())

    def remove(self, job_id: str) -> Job:
        """Remove and return a job.

        Raises:
            JobNotFoundError: If the id is unknown.
        """
        try:
            return self._jobs.pop(job_id)
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def filter(self, predicate: Callable[[Job], bool]) -> list[Job]:
        return [job for job in self._jobs.values() if predicate(job)]

    def count(self, *statuses: JobStatus) -> int:
        return sum(1 for job in self._jobs.values() if job.status in statuses)

    def find_active_by_url(self, url: str) -> Job | None:
        """Return the first non-terminal job for a URL, if any."""
        for job in self._jobs.values():
            if job.source_url == url and job.status.is_active:
                return job
        return None
