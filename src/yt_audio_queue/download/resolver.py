"""yt-dlp lookups: expand submitted URLs and fetch media details."""

from __future__ import annotations

import json
import logging
import subprocess  # nosec B404
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qs, urlparse

from yt_audio_queue.core.errors import SubmissionError
from yt_audio_queue.worker.output import clean_error_output

logger = logging.getLogger(__name__)

# Metadata lookups should never hang the caller indefinitely
LOOKUP_TIMEOUT_SECONDS = 120

# Maximum reasonable duration (24 hours) for validation
MAX_DURATION_SECONDS = 86400


@dataclass(frozen=True)
class MediaDetails:
    """Descriptive metadata for one media item.

    Attributes:
        url: Canonical page URL of the item.
        title: The media title.
        channel: Uploader or channel name.
        thumbnail: Thumbnail URL.
        duration_seconds: Duration, None if unknown or implausible.
    """

    url: str
    title: str = ""
    channel: str | None = None
    thumbnail: str | None = None
    duration_seconds: float | None = None


@dataclass
class ResolvedSource:
    """What a submitted URL expands to.

    Attributes:
        url: The URL as submitted.
        entries: One entry per media item, in source order.
        collection_name: Playlist title, if the URL is a playlist.
    """

    url: str
    entries: list[MediaDetails] = field(default_factory=list)
    collection_name: str | None = None

    @property
    def is_collection(self) -> bool:
        return self.collection_name is not None or len(self.entries) > 1


class SourceResolver(Protocol):
    """Looks up what a URL points at. Both calls may block on the network."""

    def resolve(self, url: str) -> ResolvedSource: ...

    def fetch_details(self, url: str) -> MediaDetails | None: ...


def is_playlist(url: str) -> bool:
    """Check if URL is a playlist.

    Args:
        url: The URL to check.

    Returns:
        True if URL appears to be a playlist, False otherwise.
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urlparse(url)
    except (ValueError, AttributeError):
        return False

    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return False

    if "list" in parse_qs(parsed.query):
        return True

    return "/playlist" in parsed.path


def _safe_duration(value: Any) -> float | None:
    if value is None:
        return None
    try:
        duration = float(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if duration < 0 or duration > MAX_DURATION_SECONDS:
        return None
    return duration


def _pick_thumbnail(data: dict[str, Any]) -> str | None:
    if data.get("thumbnail"):
        return data["thumbnail"]
    thumbnails = data.get("thumbnails") or []
    if thumbnails and isinstance(thumbnails[-1], dict):
        return thumbnails[-1].get("url")
    return None


def _entry_url(data: dict[str, Any], fallback: str) -> str:
    """Page URL for an entry.

    Flat playlist entries (_type=url) carry the page in "url"; full video
    info carries a direct stream URL there, so prefer webpage_url.
    """
    if data.get("_type") == "url" and data.get("url"):
        return data["url"]
    if data.get("webpage_url"):
        return data["webpage_url"]
    if data.get("id") and data.get("ie_key", "Youtube") == "Youtube":
        return f"https://www.youtube.com/watch?v={data['id']}"
    return fallback


def details_from_info(data: dict[str, Any], fallback_url: str) -> MediaDetails:
    """Build MediaDetails from one yt-dlp JSON object."""
    return MediaDetails(
        url=_entry_url(data, fallback_url),
        title=data.get("title") or "",
        channel=data.get("uploader") or data.get("channel"),
        thumbnail=_pick_thumbnail(data),
        duration_seconds=_safe_duration(data.get("duration")),
    )


def parse_resolve_output(url: str, stdout: str) -> ResolvedSource:
    """Parse `yt-dlp --dump-json --flat-playlist` output (one JSON per line)."""
    source = ResolvedSource(url=url)
    for line in stdout.strip().split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON resolver line: %s", line[:80])
            continue
        if not isinstance(data, dict):
            continue
        source.entries.append(details_from_info(data, url))
        if source.collection_name is None:
            source.collection_name = data.get("playlist_title") or data.get("playlist")
    return source


class YtDlpResolver:
    """SourceResolver that shells out to yt-dlp.

    Attributes:
        executable: yt-dlp executable name or path.
        extra_args: Arguments added to every call (cookies, user agent...).
        timeout: Seconds before a lookup is abandoned.
    """

    def __init__(
        self,
        executable: str = "yt-dlp",
        extra_args: tuple[str, ...] = (),
        timeout: float = LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self.executable = executable
        self.extra_args = extra_args
        self.timeout = timeout

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        cmd = [self.executable, *self.extra_args, *args]
        return subprocess.run(  # nosec B603
            cmd,
            capture_output=True,
            text=True,
            check=False,
            timeout=self.timeout,
        )

    def resolve(self, url: str) -> ResolvedSource:
        """Expand a URL into its media entries.

        Raises:
            SubmissionError: If yt-dlp is missing, fails, or finds nothing.
        """
        try:
            result = self._run(["--dump-json", "--flat-playlist", "--no-warnings", url])
        except FileNotFoundError:
            raise SubmissionError(url, f"{self.executable} not found") from None
        except subprocess.TimeoutExpired:
            raise SubmissionError(url, "timed out while reading media info") from None
        except subprocess.SubprocessError as e:
            raise SubmissionError(url, str(e)) from e

        if result.returncode != 0:
            raise SubmissionError(url, clean_error_output(result.stderr))

        source = parse_resolve_output(url, result.stdout)
        if not source.entries:
            raise SubmissionError(url, "no media found at this URL")
        logger.debug("Resolved %s to %d entr(ies)", url, len(source.entries))
        return source

    def fetch_details(self, url: str) -> MediaDetails | None:
        """Fetch full metadata for a single item; None on any failure."""
        try:
            result = self._run(
                ["--dump-json", "--no-playlist", "--no-warnings", "--skip-download", url]
            )
        except (subprocess.SubprocessError, FileNotFoundError) as e:
            logger.debug("Metadata lookup failed for %s: %s", url, e)
            return None

        if result.returncode != 0:
            logger.debug("Metadata lookup failed for %s: %s", url, result.stderr.strip())
            return None

        try:
            data = json.loads(result.stdout.strip())
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        return details_from_info(data, url)
