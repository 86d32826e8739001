"""Outcome types returned by queue operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from yt_audio_queue.jobs.job import Job


class SkipReason(Enum):
    """Why a submitted URL did not become a job."""

    IN_QUEUE = "in_queue"
    ALREADY_DOWNLOADED = "already_downloaded"


@dataclass(frozen=True)
class SkippedItem:
    """A duplicate that was reported instead of queued.

    Attributes:
        url: The URL that was skipped.
        reason: Duplicate rule that matched.
        existing_id: Id of the job or record that already covers the URL.
        title: Best known title for display.
        downloaded_at: When the earlier download finished (already_downloaded only).
    """

    url: str
    reason: SkipReason
    existing_id: str
    title: str = ""
    downloaded_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "reason": self.reason.value,
            "existing_id": self.existing_id,
            "title": self.title,
            "downloaded_at": self.downloaded_at,
        }


@dataclass
class SubmitResult:
    """Result of submitting one URL (one item or a whole collection)."""

    jobs: list[Job] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)
    collection_id: str | None = None

    @property
    def created_count(self) -> int:
        return len(self.jobs)

    @property
    def all_skipped(self) -> bool:
        return not self.jobs and bool(self.skipped)


@dataclass(frozen=True)
class ItemError:
    """Per-item failure inside a batch or bulk operation."""

    target: str
    error: str


@dataclass
class BatchSubmitResult:
    """Aggregate of a batch submission.

    One failing URL never aborts the batch; it is recorded in `errors`.
    """

    jobs: list[Job] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.jobs)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def has_failures(self) -> bool:
        return bool(self.errors)

    def absorb(self, result: SubmitResult) -> None:
        self.jobs.extend(result.jobs)
        self.skipped.extend(result.skipped)


@dataclass(frozen=True)
class ControlResult:
    """Synchronous outcome of a single control operation.

    Attributes:
        success: Whether the operation took effect.
        job_id: The job addressed.
        reason: Why the operation was rejected (empty on success).
        job: Snapshot of the job after the operation, when known.
    """

    success: bool
    job_id: str
    reason: str = ""
    job: dict[str, Any] | None = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, job: Job) -> ControlResult:
        return cls(success=True, job_id=job.id, job=job.to_dict())

    @classmethod
    def rejected(cls, job_id: str, reason: str, job: Job | None = None) -> ControlResult:
        return cls(
            success=False,
            job_id=job_id,
            reason=reason,
            job=job.to_dict() if job else None,
        )


@dataclass
class BulkResult:
    """Aggregate of a pause-all / resume-all / cancel-all / retry-all."""

    count: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass(frozen=True)
class QueueStats:
    """Counts of in-memory jobs by status."""

    total: int = 0
    pending: int = 0
    running: int = 0
    paused: int = 0
    completed: int = 0
    error: int = 0
    cancelled: int = 0
