"""Unit tests for yt-dlp output parsing."""

from __future__ import annotations

import os
import time
from pathlib import Path

from yt_audio_queue.jobs import JobPhase
from yt_audio_queue.worker import ProgressParser, ProgressReading, clean_error_output
from yt_audio_queue.worker.output import MAX_ERROR_LENGTH, find_recent_output


class TestProgressParser:
    """Tests for ProgressParser.feed()."""

    def test_download_progress(self) -> None:
        """Test that a download line produces a reading."""
        parser = ProgressParser()
        reading = parser.feed("[download]  42.3% of 5.00MiB at 1.00MiB/s ETA 00:03")
        assert reading == ProgressReading(percent=42.3, phase=JobPhase.DOWNLOADING)

    def test_repeated_line_ignored(self) -> None:
        """Test that re-printed progress is not reported again."""
        parser = ProgressParser()
        parser.feed("[download]  10.0%")
        assert parser.feed("[download]  10.0%") is None
        assert parser.feed("[download]   5.0%") is None
        assert parser.percent == 10.0

    def test_out_of_range_ignored(self) -> None:
        """Test that percentages above 100 are ignored."""
        parser = ProgressParser()
        assert parser.feed("[download] 150%") is None
        assert parser.percent == 0.0

    def test_unrelated_lines(self) -> None:
        """Test that lines without progress produce nothing."""
        parser = ProgressParser()
        assert parser.feed("[youtube] abc123: Downloading webpage") is None
        assert parser.feed("") is None

    def test_percent_in_destination_path_ignored(self) -> None:
        """Test that a percent sign in a file name is not read as progress."""
        parser = ProgressParser()
        assert parser.feed("[download] Destination: /music/100% Pure Love.webm") is None
        assert parser.feed("[youtube] Extracting URL: https://x.test/?q=50%25") is None

        reading = parser.feed("[download]  10.0% of 3.45MiB at 1.00MiB/s ETA 00:03")

        assert reading == ProgressReading(percent=10.0, phase=JobPhase.DOWNLOADING)

    def test_complete_download_enters_converting(self) -> None:
        """Test that 100% switches to the converting phase."""
        parser = ProgressParser()
        reading = parser.feed("[download] 100% of 5.00MiB in 00:02")
        assert reading == ProgressReading(percent=100.0, phase=JobPhase.CONVERTING)

    def test_extract_audio_destination(self) -> None:
        """Test that the post-processor line gives phase and output file."""
        parser = ProgressParser()
        parser.feed("[download]  80.0%")
        reading = parser.feed("[ExtractAudio] Destination: /music/Song.mp3")

        assert reading == ProgressReading(percent=80.0, phase=JobPhase.CONVERTING)
        assert parser.output_file == "/music/Song.mp3"
        assert parser.feed("[ExtractAudio] Destination: /music/Song.mp3") is None

    def test_already_converted(self) -> None:
        """Test the destination when no conversion is needed."""
        parser = ProgressParser()
        parser.feed(
            '[ExtractAudio] Not converting audio "/music/Song.mp3"; '
            "file is already in target format mp3"
        )
        assert parser.output_file == "/music/Song.mp3"

    def test_merger_destination(self) -> None:
        """Test that a merged file is mapped to the target format."""
        parser = ProgressParser(audio_format="m4a")
        parser.feed('[Merger] Merging formats into "/music/Song.webm"')
        assert parser.output_file == str(Path("/music/Song.m4a"))


class TestCleanErrorOutput:
    """Tests for clean_error_output() function."""

    def test_error_lines_only(self) -> None:
        """Test that ERROR text is kept and warnings dropped."""
        stderr = "WARNING: something\nERROR: [youtube] abc: Video unavailable\n"
        assert clean_error_output(stderr) == "[youtube] abc: Video unavailable"

    def test_no_error_prefix(self) -> None:
        """Test that plain lines are kept when there is no ERROR line."""
        assert clean_error_output("WARNING: a\nsomething broke\n") == "something broke"

    def test_empty(self) -> None:
        """Test the generic message for empty output."""
        assert clean_error_output("") == "Unknown error"
        assert clean_error_output("   \n") == "Unknown error"
        assert clean_error_output("WARNING: only a warning") == "Unknown error"

    def test_truncated(self) -> None:
        """Test that long messages are truncated."""
        result = clean_error_output("ERROR: " + "x" * 1000)
        assert len(result) == MAX_ERROR_LENGTH
        assert result.endswith("...")


class TestFindRecentOutput:
    """Tests for find_recent_output() function."""

    def test_newest_match(self, temp_dir: Path) -> None:
        """Test that the newest matching file is returned."""
        started = time.time()
        older = temp_dir / "older.mp3"
        newer = temp_dir / "newer.mp3"
        older.write_bytes(b"a")
        newer.write_bytes(b"b")
        os.utime(older, (started, started))
        os.utime(newer, (started + 5, started + 5))

        assert find_recent_output(temp_dir, "mp3", started) == newer

    def test_ignores_files_before_start(self, temp_dir: Path) -> None:
        """Test that earlier downloads are never picked."""
        started = time.time()
        old = temp_dir / "old.mp3"
        old.write_bytes(b"a")
        os.utime(old, (started - 3600, started - 3600))

        assert find_recent_output(temp_dir, "mp3", started) is None

    def test_ignores_other_extensions(self, temp_dir: Path) -> None:
        """Test that only the target extension matches."""
        (temp_dir / "song.webm").write_bytes(b"a")
        assert find_recent_output(temp_dir, "mp3", time.time() - 10) is None

    def test_missing_directory(self, temp_dir: Path) -> None:
        """Test that an unreadable directory gives None."""
        assert find_recent_output(temp_dir / "missing", "mp3", 0) is None
