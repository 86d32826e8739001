"""Core utilities - errors and filename handling."""

from yt_audio_queue.core.errors import (
    DuplicateJobError,
    InvalidTransitionError,
    JobNotFoundError,
    QueueError,
    SubmissionError,
    ToolNotFoundError,
    UnsupportedControlError,
    format_error,
)
from yt_audio_queue.core.filename import output_template, safe_title

__all__ = [
    "DuplicateJobError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "QueueError",
    "SubmissionError",
    "ToolNotFoundError",
    "UnsupportedControlError",
    "format_error",
    "output_template",
    "safe_title",
]
