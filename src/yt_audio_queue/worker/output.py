"""Parsing of yt-dlp's human-readable output stream."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from yt_audio_queue.jobs.job import JobPhase

logger = logging.getLogger(__name__)

# Only yt-dlp status lines carry progress; paths and URLs can contain "%" too
PROGRESS_PATTERN = re.compile(r"^\[download\]\s+(\d+(?:\.\d+)?)%")

# The post-processor line means the download is done and conversion started
CONVERTING_MARKER = "[ExtractAudio]"

DESTINATION_PATTERN = re.compile(r"\[ExtractAudio\] Destination: (.+)")
MERGER_PATTERN = re.compile(r'\[Merger\] Merging formats into "(.+)"')
ALREADY_CONVERTED_PATTERN = re.compile(
    r"\[ExtractAudio\] Not converting audio (.+?);"
)

MAX_ERROR_LENGTH = 500

# Filesystems with coarse timestamps can report an mtime just before the start
MTIME_SLACK_SECONDS = 2.0


@dataclass(frozen=True)
class ProgressReading:
    """A progress change worth reporting.

    Attributes:
        percent: Highest percentage seen so far.
        phase: Downloading, or converting once post-processing began.
    """

    percent: float
    phase: JobPhase


class ProgressParser:
    """Stateful parser for one worker's stdout.

    Only readings that move the bar forward (or switch to the converting
    phase) are returned, so re-printed lines never make progress flicker.
    """

    def __init__(self, audio_format: str = "mp3") -> None:
        self.audio_format = audio_format
        self.percent = 0.0
        self.phase = JobPhase.DOWNLOADING
        self.output_file: str | None = None

    def feed(self, line: str) -> ProgressReading | None:
        """Consume one output line.

        Returns:
            A reading if visible progress changed, otherwise None.
        """
        self._detect_destination(line)

        changed = False
        match = PROGRESS_PATTERN.match(line)
        if match:
            try:
                value = float(match.group(1))
            except ValueError:
                value = -1.0
            if self.percent < value <= 100:
                self.percent = value
                changed = True
                if value >= 100:
                    changed |= self._enter_converting()

        if CONVERTING_MARKER in line:
            changed |= self._enter_converting()

        if not changed:
            return None
        return ProgressReading(percent=self.percent, phase=self.phase)

    def _enter_converting(self) -> bool:
        if self.phase is JobPhase.CONVERTING:
            return False
        self.phase = JobPhase.CONVERTING
        return True

    def _detect_destination(self, line: str) -> None:
        match = DESTINATION_PATTERN.search(line)
        if match:
            self.output_file = match.group(1).strip()
            return

        match = ALREADY_CONVERTED_PATTERN.search(line)
        if match:
            self.output_file = match.group(1).strip().strip('"')
            return

        match = MERGER_PATTERN.search(line)
        if match:
            merged = Path(match.group(1).strip())
            self.output_file = str(merged.with_suffix(f".{self.audio_format}"))


def clean_error_output(stderr: str) -> str:
    """Extract the useful part of a worker's diagnostic output.

    WARNING lines are dropped; if ERROR lines exist only their text is kept.

    Args:
        stderr: Raw stderr text.

    Returns:
        Error text, or a generic message if nothing useful remains.
    """
    if not stderr or not stderr.strip():
        return "Unknown error"

    lines = [
        line.strip()
        for line in stderr.strip().split("\n")
        if line.strip() and "WARNING:" not in line
    ]
    errors = [line.split("ERROR:", 1)[-1].strip() for line in lines if "ERROR:" in line]
    message = "\n".join(errors or lines).strip()

    if len(message) > MAX_ERROR_LENGTH:
        message = message[: MAX_ERROR_LENGTH - 3] + "..."

    return message or "Unknown error"


def log_warnings(stderr: str, job_id: str) -> None:
    """Log yt-dlp warnings from stderr."""
    for line in stderr.strip().split("\n"):
        if "WARNING:" in line:
            logger.warning("yt-dlp [%s]: %s", job_id[:8], line.split("WARNING:")[-1].strip())


def find_recent_output(directory: Path, extension: str, since: float) -> Path | None:
    """Find the newest file with the extension modified at or after `since`.

    Fallback for when the worker never printed its destination. Files
    older than the job's start are ignored so earlier downloads are never
    picked, but two jobs finishing in the same directory at once can still
    be confused.

    Args:
        directory: Directory to scan.
        extension: File extension without the dot.
        since: Epoch seconds when the worker started.

    Returns:
        Path of the newest match, or None.
    """
    try:
        candidates = [
            path
            for path in directory.iterdir()
            if path.is_file() and path.suffix == f".{extension}"
        ]
    except OSError as e:
        logger.debug("Could not scan %s: %s", directory, e)
        return None

    newest: tuple[float, Path] | None = None
    for path in candidates:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            continue
        if mtime < since - MTIME_SLACK_SECONDS:
            continue
        if newest is None or mtime > newest[0]:
            newest = (mtime, path)

    return newest[1] if newest else None
