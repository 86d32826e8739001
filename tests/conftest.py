"""Shared pytest fixtures for yt-audio-queue tests."""

from __future__ import annotations

import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from yt_audio_queue.config import Settings, StaticSettings
from yt_audio_queue.core import SubmissionError, UnsupportedControlError
from yt_audio_queue.download import MediaDetails, ResolvedSource
from yt_audio_queue.jobs import Job, JobPhase, RetryPolicy
from yt_audio_queue.jobs.service import QueueService
from yt_audio_queue.storage import SqliteHistoryStore
from yt_audio_queue.worker import ProgressReading, WorkerListener, WorkerOutcome

if TYPE_CHECKING:
    from collections.abc import Generator


class FakeResolver:
    """SourceResolver with canned answers.

    Unknown URLs resolve to a single item titled after the URL.
    """

    def __init__(self) -> None:
        self.sources: dict[str, ResolvedSource] = {}
        self.details: dict[str, MediaDetails] = {}
        self.failures: dict[str, str] = {}

    def add_collection(self, url: str, name: str, *member_urls: str) -> None:
        entries = [MediaDetails(member, title=f"Track {i}") for i, member in enumerate(member_urls, 1)]
        self.sources[url] = ResolvedSource(url, entries, collection_name=name)

    def resolve(self, url: str) -> ResolvedSource:
        if url in self.failures:
            raise SubmissionError(url, self.failures[url])
        if url in self.sources:
            return self.sources[url]
        return ResolvedSource(url, [MediaDetails(url, title=f"Video {url[-4:]}", channel="Channel")])

    def fetch_details(self, url: str) -> MediaDetails | None:
        return self.details.get(url)


class FakeWorker:
    """Worker backend that never spawns anything.

    Tests drive the lifecycle with report_started/report_progress/finish.
    """

    def __init__(self) -> None:
        self.listeners: dict[str, WorkerListener] = {}
        self.started: list[str] = []
        self.paused: set[str] = set()
        self.cancelled: list[str] = []
        self.start_error: Exception | None = None
        self.pause_supported = True

    def start(self, job: Job, settings: Settings, listener: WorkerListener) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started.append(job.id)
        self.listeners[job.id] = listener

    def pause(self, job_id: str) -> bool:
        if not self.pause_supported:
            raise UnsupportedControlError("pause", "win32")
        if job_id not in self.listeners or job_id in self.paused:
            return False
        self.paused.add(job_id)
        return True

    def resume(self, job_id: str) -> bool:
        if job_id not in self.paused:
            return False
        self.paused.discard(job_id)
        return True

    def cancel(self, job_id: str) -> bool:
        self.paused.discard(job_id)
        if self.listeners.pop(job_id, None) is None:
            return False
        self.cancelled.append(job_id)
        return True

    def shutdown(self) -> None:
        for job_id in list(self.listeners):
            self.cancel(job_id)

    def report_started(self, job_id: str) -> None:
        self.listeners[job_id].on_started(job_id)

    def report_progress(
        self, job_id: str, percent: float, phase: JobPhase = JobPhase.DOWNLOADING
    ) -> None:
        self.listeners[job_id].on_progress(job_id, ProgressReading(percent, phase))

    def finish(
        self,
        job_id: str,
        returncode: int = 0,
        output_file: str | None = "/music/out.mp3",
        error: str | None = None,
    ) -> WorkerListener:
        listener = self.listeners.pop(job_id)
        listener.on_finished(
            WorkerOutcome(
                job_id,
                returncode,
                output_file=output_file if returncode == 0 else None,
                file_size_bytes=1024 if returncode == 0 else None,
                throughput_bytes_per_second=512.0 if returncode == 0 else None,
                error=error,
            )
        )
        return listener


class InstantWorker(FakeWorker):
    """FakeWorker that finishes every job as soon as it is admitted.

    URLs in `failing` end in an error with the given message.
    """

    def __init__(self) -> None:
        super().__init__()
        self.failing: dict[str, str] = {}

    def start(self, job: Job, settings: Settings, listener: WorkerListener) -> None:
        super().start(job, settings, listener)
        self.report_started(job.id)
        error = self.failing.get(job.source_url)
        if error is not None:
            self.finish(job.id, returncode=1, error=error)
        else:
            self.finish(job.id, output_file=f"/music/{job.title}.mp3")


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll until predicate is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir: Path) -> StaticSettings:
    """Settings with one slot and no automatic retries."""
    return StaticSettings(
        Settings(concurrency_limit=1, output_directory=temp_dir, auto_retry=False)
    )


@pytest.fixture
def history() -> Generator[SqliteHistoryStore, None, None]:
    store = SqliteHistoryStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def worker() -> FakeWorker:
    return FakeWorker()


@pytest.fixture
def service(
    settings: StaticSettings,
    history: SqliteHistoryStore,
    resolver: FakeResolver,
    worker: FakeWorker,
) -> Generator[QueueService, None, None]:
    """Running queue service wired to fakes."""
    queue_service = QueueService(
        settings,
        history,
        resolver,
        worker,
        retry_policy=RetryPolicy(base_delay=0.0, max_delay=0.0, jitter=False),
        prefetch_metadata=False,
    )
    queue_service.start()
    yield queue_service
    queue_service.close()


@pytest.fixture
def mock_yt_dlp_video() -> dict:
    """yt-dlp JSON for a single video."""
    return {
        "id": "dQw4w9WgXcQ",
        "title": "Test Video Title",
        "uploader": "Test Channel",
        "duration": 212,
        "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hq.jpg",
        "webpage_url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    }


@pytest.fixture
def mock_yt_dlp_playlist_entries() -> list[dict]:
    """yt-dlp --flat-playlist JSON lines for a three item playlist."""
    return [
        {
            "_type": "url",
            "id": f"video{i}",
            "title": f"Video {i}",
            "url": f"https://www.youtube.com/watch?v=video{i}",
            "playlist_title": "Test Playlist",
        }
        for i in range(1, 4)
    ]


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll helper for state reached on background threads."""
    return wait_for


@pytest.fixture
def instant_worker() -> InstantWorker:
    return InstantWorker()
