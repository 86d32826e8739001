"""Unit tests for custom exceptions and error formatting."""

from __future__ import annotations

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


class TestExceptions:
    """Tests for exception construction."""

    def test_submission_error(self) -> None:
        """Test SubmissionError keeps url and message."""
        error = SubmissionError("https://example.com", "Video unavailable")
        assert error.url == "https://example.com"
        assert error.message == "Video unavailable"
        assert "https://example.com" in str(error)

    def test_queue_errors_share_base(self) -> None:
        """Test that queue state errors derive from QueueError."""
        assert isinstance(JobNotFoundError("abc"), QueueError)
        assert isinstance(DuplicateJobError("abc"), QueueError)
        assert isinstance(InvalidTransitionError("abc", "pending", "paused"), QueueError)

    def test_invalid_transition_message(self) -> None:
        """Test InvalidTransitionError names both statuses."""
        error = InvalidTransitionError("abc", "completed", "running")
        assert error.current == "completed"
        assert error.target == "running"
        assert str(error) == "Job abc cannot go from completed to running"

    def test_tool_not_found_hints(self) -> None:
        """Test install hints per tool."""
        assert "github.com/yt-dlp" in str(ToolNotFoundError("yt-dlp"))
        assert "ffmpeg.org" in str(ToolNotFoundError("ffmpeg"))
        assert "PATH" in str(ToolNotFoundError("other"))

    def test_unsupported_control(self) -> None:
        """Test UnsupportedControlError message."""
        error = UnsupportedControlError("pause", "win32")
        assert str(error) == "pause is not supported on win32"


class TestFormatError:
    """Tests for format_error() function."""

    def test_private_video(self) -> None:
        """Test formatting of private video error."""
        error = SubmissionError("https://example.com", "Private video")
        assert "private or age-restricted" in format_error(error)

    def test_unavailable_video(self) -> None:
        """Test formatting of unavailable video error."""
        error = SubmissionError("https://example.com", "Video unavailable")
        assert "Check if the URL is correct" in format_error(error)

    def test_network_error(self) -> None:
        """Test formatting of network error."""
        error = SubmissionError("https://example.com", "Connection refused")
        assert "internet connection" in format_error(error)

    def test_generic_submission_error(self) -> None:
        """Test formatting of other submission errors."""
        error = SubmissionError("https://example.com", "Bad things")
        assert format_error(error) == "Could not queue https://example.com: Bad things"

    def test_job_not_found(self) -> None:
        """Test formatting of unknown job ids."""
        assert "No job with id abc" in format_error(JobNotFoundError("abc"))

    def test_tool_not_found(self) -> None:
        """Test that tool errors are shown as-is."""
        error = ToolNotFoundError("ffmpeg")
        assert format_error(error) == str(error)

    def test_permission_error(self) -> None:
        """Test formatting of permission errors."""
        assert "Permission denied" in format_error(PermissionError("denied"))

    def test_disk_full(self) -> None:
        """Test formatting of disk full errors."""
        assert "disk space" in format_error(OSError("No space left on device"))

    def test_other_os_error(self) -> None:
        """Test formatting of other OS errors."""
        assert format_error(OSError("boom")) == "System error: boom"

    def test_unexpected_error(self) -> None:
        """Test fallback formatting."""
        assert format_error(ValueError("oops")) == "Unexpected error: oops"
