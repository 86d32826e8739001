"""Unit tests for RetryPolicy and error classification."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from yt_audio_queue.jobs.retry import (
    RetryPolicy,
    is_permanent_error,
    is_retryable_error,
)


class TestRetryPolicy:
    """Tests for RetryPolicy dataclass."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        policy = RetryPolicy()
        assert policy.base_delay == 2.0
        assert policy.max_delay == 60.0
        assert policy.jitter is True

    def test_invalid_base_delay(self) -> None:
        """Test that negative base_delay raises ValueError."""
        with pytest.raises(ValueError, match="base_delay must be >= 0"):
            RetryPolicy(base_delay=-1.0)

    def test_invalid_max_delay(self) -> None:
        """Test that max_delay < base_delay raises ValueError."""
        with pytest.raises(ValueError, match=r"max_delay .* must be >= base_delay"):
            RetryPolicy(base_delay=10.0, max_delay=5.0)

    def test_delay_for_attempt_exponential(self) -> None:
        """Test exponential backoff calculation."""
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0, jitter=False)
        assert policy.delay_for_attempt(0) == 1.0
        assert policy.delay_for_attempt(1) == 2.0
        assert policy.delay_for_attempt(2) == 4.0
        assert policy.delay_for_attempt(3) == 8.0

    def test_delay_for_attempt_capped(self) -> None:
        """Test that delay is capped at max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=False)
        assert policy.delay_for_attempt(10) == 5.0

    def test_delay_negative_attempt(self) -> None:
        """Test that negative attempts are treated as the first."""
        policy = RetryPolicy(base_delay=1.0, jitter=False)
        assert policy.delay_for_attempt(-3) == 1.0

    def test_delay_with_jitter(self) -> None:
        """Test that jitter adds up to one second."""
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0, jitter=True)
        with patch("yt_audio_queue.jobs.retry.random.uniform", return_value=0.5):
            assert policy.delay_for_attempt(0) == 1.5

    def test_should_retry(self) -> None:
        """Test that transient errors retry while budget remains."""
        policy = RetryPolicy()
        assert policy.should_retry("Connection reset by peer", 0, 3)
        assert policy.should_retry("HTTP Error 503", 2, 3)

    def test_should_not_retry_exhausted(self) -> None:
        """Test that the retry budget is respected."""
        policy = RetryPolicy()
        assert not policy.should_retry("timed out", 3, 3)
        assert not policy.should_retry("timed out", 0, 0)

    def test_should_not_retry_permanent(self) -> None:
        """Test that permanent errors never retry."""
        assert not RetryPolicy().should_retry("Video unavailable", 0, 3)


class TestErrorClassification:
    """Tests for is_retryable_error() and is_permanent_error()."""

    @pytest.mark.parametrize(
        "error",
        [
            "Read timed out",
            "HTTP Error 429: Too Many Requests",
            "Connection refused",
            "Temporary failure in name resolution",
            "Got error: fragment 3 not downloaded",
        ],
    )
    def test_retryable(self, error: str) -> None:
        """Test transient errors are retryable."""
        assert is_retryable_error(error)

    @pytest.mark.parametrize(
        "error",
        [
            "Private video. Sign in if you've been granted access",
            "HTTP Error 404: Not Found",
            "This video has been removed by the uploader",
            "Unsupported URL: https://example.com",
        ],
    )
    def test_permanent(self, error: str) -> None:
        """Test permanent errors are not retryable."""
        assert is_permanent_error(error)
        assert not is_retryable_error(error)

    def test_permanent_wins(self) -> None:
        """Test that permanent patterns override retryable ones."""
        assert not is_retryable_error("network error: video unavailable")

    def test_unknown_error(self) -> None:
        """Test that unrecognized errors are not retried."""
        assert not is_retryable_error("something odd happened")
        assert not is_retryable_error("")
        assert not is_permanent_error("")
