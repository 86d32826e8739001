"""Queue job entity and its state machine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from yt_audio_queue.core.errors import InvalidTransitionError

PLACEHOLDER_TITLE = "Loading..."


class JobStatus(Enum):
    """Status of a queue job."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Completed, error and cancelled jobs never change again."""
        return self in (JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        """Pending, running and paused jobs are still in the queue."""
        return not self.is_terminal

    @property
    def holds_slot(self) -> bool:
        """Running and paused jobs own a live worker process."""
        return self in (JobStatus.RUNNING, JobStatus.PAUSED)


class JobKind(Enum):
    """How a job was submitted."""

    SINGLE = "single"
    COLLECTION_MEMBER = "collection_member"


class JobPhase(Enum):
    """Sub-status of a running job."""

    DOWNLOADING = "downloading"
    CONVERTING = "converting"


def new_job_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Job:
    """Single fetch-and-convert unit of work.

    Attributes:
        source_url: The URL as submitted (not unique across jobs).
        id: Opaque identifier, never reused.
        title: Media title; a placeholder until metadata arrives.
        channel: Uploader or channel name.
        thumbnail: Thumbnail URL.
        duration_seconds: Media duration.
        kind: Single item or member of a collection.
        collection_id: Shared by all members of one collection submission.
        collection_name: Collection (playlist) title.
        status: Current status.
        progress_percent: 0-100, non-decreasing while running.
        phase: Downloading or converting while running.
        error_detail: Diagnostic text, only in the error state.
        output_file: Converted file path, only when completed.
        file_size_bytes: Size of output_file, best effort.
        throughput_bytes_per_second: file size over wall-clock run time.
        submitted_at: When the job entered the queue.
        started_at: When the worker process was spawned.
        finished_at: When the job reached a terminal status.
        retry_count: Automatic retries consumed.
        not_before: Earliest admission time after an automatic retry.
    """

    source_url: str
    id: str = field(default_factory=new_job_id)
    title: str = PLACEHOLDER_TITLE
    channel: str | None = None
    thumbnail: str | None = None
    duration_seconds: float | None = None
    kind: JobKind = JobKind.SINGLE
    collection_id: str | None = None
    collection_name: str | None = None

    # Runtime state
    status: JobStatus = JobStatus.PENDING
    progress_percent: float = 0.0
    phase: JobPhase | None = None
    error_detail: str | None = None
    output_file: str | None = None
    file_size_bytes: int | None = None
    throughput_bytes_per_second: float | None = None
    submitted_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    retry_count: int = 0
    not_before: float | None = None

    def __post_init__(self) -> None:
        """Validate job fields after initialization."""
        if not self.source_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL: {self.source_url}")
        if self.kind is JobKind.COLLECTION_MEMBER and not self.collection_id:
            raise ValueError("collection members need a collection_id")
        if not 0 <= self.progress_percent <= 100:
            self.progress_percent = max(0.0, min(100.0, self.progress_percent))

    @property
    def has_placeholder_metadata(self) -> bool:
        return self.title == PLACEHOLDER_TITLE or not self.channel

    def _require(self, target: JobStatus, *allowed: JobStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(self.id, self.status.value, target.value)

    def mark_running(self) -> None:
        """Admit the job (pending -> running)."""
        self._require(JobStatus.RUNNING, JobStatus.PENDING)
        self.status = JobStatus.RUNNING
        self.progress_percent = 0.0
        self.phase = JobPhase.DOWNLOADING
        self.not_before = None

    def mark_started(self) -> None:
        """Record that the worker process is attached."""
        self._require(JobStatus.RUNNING, JobStatus.RUNNING)
        self.started_at = utc_now()

    def mark_paused(self) -> None:
        self._require(JobStatus.PAUSED, JobStatus.RUNNING)
        self.status = JobStatus.PAUSED

    def mark_resumed(self) -> None:
        self._require(JobStatus.RUNNING, JobStatus.PAUSED)
        self.status = JobStatus.RUNNING

    def advance_progress(self, percent: float, phase: JobPhase | None = None) -> bool:
        """Apply a progress reading.

        Returns:
            True if the visible progress changed, False for stale or
            repeated readings and for jobs that are not running.
        """
        if self.status is not JobStatus.RUNNING:
            return False

        changed = False
        percent = max(0.0, min(100.0, percent))
        if percent > self.progress_percent:
            self.progress_percent = percent
            changed = True
        if phase is not None and phase is not self.phase:
            # Converting is final; never drop back to downloading
            if self.phase is not JobPhase.CONVERTING:
                self.phase = phase
                changed = True
        return changed

    def mark_completed(
        self,
        output_file: str | None,
        file_size_bytes: int | None = None,
        throughput_bytes_per_second: float | None = None,
    ) -> None:
        self._require(JobStatus.COMPLETED, JobStatus.RUNNING, JobStatus.PAUSED)
        self.status = JobStatus.COMPLETED
        self.progress_percent = 100.0
        self.phase = None
        self.output_file = output_file
        self.file_size_bytes = file_size_bytes
        self.throughput_bytes_per_second = throughput_bytes_per_second
        self.error_detail = None
        self.finished_at = utc_now()

    def mark_failed(self, error: str) -> None:
        self._require(JobStatus.ERROR, JobStatus.RUNNING, JobStatus.PAUSED)
        self.status = JobStatus.ERROR
        self.phase = None
        self.error_detail = error
        self.finished_at = utc_now()

    def mark_cancelled(self) -> None:
        self._require(
            JobStatus.CANCELLED, JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED
        )
        self.status = JobStatus.CANCELLED
        self.phase = None
        self.finished_at = utc_now()

    def schedule_retry(self, not_before: float) -> None:
        """Send a failed run back to pending for an automatic retry."""
        self._require(JobStatus.PENDING, JobStatus.RUNNING)
        self.status = JobStatus.PENDING
        self.retry_count += 1
        self.progress_percent = 0.0
        self.phase = None
        self.started_at = None
        self.not_before = not_before

    def to_dict(self) -> dict[str, Any]:
        """Serialize for event payloads and snapshots."""
        return {
            "id": self.id,
            "source_url": self.source_url,
            "title": self.title,
            "channel": self.channel,
            "thumbnail": self.thumbnail,
            "duration_seconds": self.duration_seconds,
            "kind": self.kind.value,
            "collection_id": self.collection_id,
            "collection_name": self.collection_name,
            "status": self.status.value,
            "progress_percent": self.progress_percent,
            "phase": self.phase.value if self.phase else None,
            "error_detail": self.error_detail,
            "output_file": self.output_file,
            "file_size_bytes": self.file_size_bytes,
            "throughput_bytes_per_second": self.throughput_bytes_per_second,
            "submitted_at": self.submitted_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "retry_count": self.retry_count,
        }
