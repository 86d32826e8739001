"""Jobs feature - queue entities, events and results."""

from yt_audio_queue.jobs.events import EventBus, EventType, QueueEvent, Subscription
from yt_audio_queue.jobs.job import Job, JobKind, JobPhase, JobStatus
from yt_audio_queue.jobs.registry import JobRegistry
from yt_audio_queue.jobs.results import (
    BatchSubmitResult,
    BulkResult,
    ControlResult,
    ItemError,
    QueueStats,
    SkippedItem,
    SkipReason,
    SubmitResult,
)
from yt_audio_queue.jobs.retry import RetryPolicy, is_retryable_error

__all__ = [
    "BatchSubmitResult",
    "BulkResult",
    "ControlResult",
    "EventBus",
    "EventType",
    "ItemError",
    "Job",
    "JobKind",
    "JobPhase",
    "JobRegistry",
    "JobStatus",
    "QueueEvent",
    "QueueStats",
    "RetryPolicy",
    "SkipReason",
    "SkippedItem",
    "Subscription",
    "SubmitResult",
    "is_retryable_error",
]
