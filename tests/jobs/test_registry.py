"""Unit tests for JobRegistry."""

from __future__ import annotations

import pytest

from yt_audio_queue.core.errors import DuplicateJobError, JobNotFoundError
from yt_audio_queue.jobs import Job, JobRegistry, JobStatus


def make_job(suffix: str = "a") -> Job:
    return Job(source_url=f"https://www.youtube.com/watch?v={suffix}")


class TestJobRegistry:
    """Tests for JobRegistry."""

    def test_insert_and_get(self) -> None:
        """Test inserting and fetching a job."""
        registry = JobRegistry()
        job = make_job()
        registry.insert(job)

        assert registry.get(job.id) is job
        assert registry.require(job.id) is job
        assert job.id in registry
        assert len(registry) == 1

    def test_duplicate_insert(self) -> None:
        """Test that an id cannot be inserted twice."""
        registry = JobRegistry()
        job = make_job()
        registry.insert(job)
        with pytest.raises(DuplicateJobError):
            registry.insert(job)

    def test_unknown_id(self) -> None:
        """Test lookups of unknown ids."""
        registry = JobRegistry()
        assert registry.get("missing") is None
        with pytest.raises(JobNotFoundError):
            registry.require("missing")
        with pytest.raises(JobNotFoundError):
            registry.remove("missing")

    def test_insertion_order(self) -> None:
        """Test that listing keeps insertion order."""
        registry = JobRegistry()
        jobs = [make_job(s) for s in "abc"]
        for job in jobs:
            registry.insert(job)
        assert registry.list() == jobs
        assert list(registry) == jobs

    def test_remove(self) -> None:
        """Test removing a job."""
        registry = JobRegistry()
        job = make_job()
        registry.insert(job)
        assert registry.remove(job.id) is job
        assert len(registry) == 0

    def test_iteration_tolerates_removal(self) -> None:
        """Test removing jobs while iterating."""
        registry = JobRegistry()
        for s in "abc":
            registry.insert(make_job(s))
        for job in registry:
            registry.remove(job.id)
        assert len(registry) == 0

    def test_filter_and_count(self) -> None:
        """Test filtering and counting by status."""
        registry = JobRegistry()
        first, second, third = make_job("a"), make_job("b"), make_job("c")
        for job in (first, second, third):
            registry.insert(job)
        second.mark_running()
        third.mark_running()
        third.mark_paused()

        assert registry.filter(lambda j: j.status is JobStatus.PENDING) == [first]
        assert registry.count(JobStatus.RUNNING, JobStatus.PAUSED) == 2
        assert registry.count(JobStatus.COMPLETED) == 0

    def test_find_active_by_url(self) -> None:
        """Test that only non-terminal jobs match a URL."""
        registry = JobRegistry()
        done = make_job("x")
        done.mark_cancelled()
        registry.insert(done)
        assert registry.find_active_by_url(done.source_url) is None

        again = make_job("x")
        registry.insert(again)
        assert registry.find_active_by_url(done.source_url) is again
