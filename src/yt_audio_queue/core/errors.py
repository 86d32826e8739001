"""Custom exceptions and error formatting for yt-audio-queue."""

from __future__ import annotations


class SubmissionError(Exception):
    """Raised when a URL cannot be turned into queue jobs."""

    def __init__(self, url: str, message: str) -> None:
        """Initialize SubmissionError.

        Args:
            url: The URL that was submitted.
            message: Description of the error.
        """
        self.url = url
        self.message = message
        super().__init__(f"Failed to queue {url}: {message}")


class QueueError(Exception):
    """Base class for queue state errors."""


class JobNotFoundError(QueueError):
    """Raised when a job id is unknown."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidTransitionError(QueueError):
    """Raised when a job cannot move to the requested status."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        """Initialize InvalidTransitionError.

        Args:
            job_id: The job being transitioned.
            current: Current status value.
            target: Requested status value.
        """
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot go from {current} to {target}")


class DuplicateJobError(QueueError):
    """Raised when a job id is inserted into the registry twice."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job already registered: {job_id}")


class UnsupportedControlError(Exception):
    """Raised when the platform cannot perform a process control operation."""

    def __init__(self, operation: str, platform: str) -> None:
        self.operation = operation
        self.platform = platform
        super().__init__(f"{operation} is not supported on {platform}")


class ToolNotFoundError(Exception):
    """Raised when yt-dlp or FFmpeg is not installed."""

    def __init__(self, tool: str) -> None:
        """Initialize ToolNotFoundError.

        Args:
            tool: Executable name that was not found on PATH.
        """
        self.tool = tool
        hints = {
            "yt-dlp": "Install yt-dlp: https://github.com/yt-dlp/yt-dlp#installation",
            "ffmpeg": "Install FFmpeg: https://ffmpeg.org/download.html",
        }
        hint = hints.get(tool, "Install it and make sure it is on PATH")
        super().__init__(f"{tool} not found. {hint}")


def format_error(error: Exception) -> str:
    """Format error for user display with actionable suggestion.

    Args:
        error: The exception to format.

    Returns:
        Human-readable error message with suggestion.
    """
    if isinstance(error, SubmissionError):
        message = error.message.lower()
        if "private" in message:
            return f"Cannot access video: {error.message}. The video may be private or age-restricted."
        if "unavailable" in message:
            return f"Video unavailable: {error.message}. Check if the URL is correct."
        if "network" in message or "connection" in message:
            return f"Network error: {error.message}. Check your internet connection and retry."
        return f"Could not queue {error.url}: {error.message}"

    if isinstance(error, JobNotFoundError):
        return f"No job with id {error.job_id}. Check `history` for known ids."

    if isinstance(error, InvalidTransitionError):
        return str(error)

    if isinstance(error, (ToolNotFoundError, UnsupportedControlError)):
        return str(error)

    if isinstance(error, PermissionError):
        return f"Permission denied: {error}. Check file permissions."

    if isinstance(error, OSError):
        if "No space left" in str(error):
            return "Insufficient disk space. Free up space and retry."
        return f"System error: {error}"

    return f"Unexpected error: {error}"
