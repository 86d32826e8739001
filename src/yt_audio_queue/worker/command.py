"""yt-dlp command line for a queue job."""

from __future__ import annotations

import shutil

from yt_audio_queue.config.settings import Settings

YT_DLP = "yt-dlp"


def build_worker_command(
    url: str,
    output_template: str,
    settings: Settings,
    executable: str = YT_DLP,
) -> list[str]:
    """Build the yt-dlp command that downloads and converts one item.

    Args:
        url: The media URL.
        output_template: yt-dlp -o template (see core.filename.output_template).
        settings: Current queue settings (format, quality, thumbnail, extras).
        executable: yt-dlp executable name or path.

    Returns:
        Command as a list of arguments.
    """
    cmd = [
        executable,
        "--extract-audio",
        "--audio-format",
        settings.audio_format,
        "--audio-quality",
        settings.audio_quality,
        "--no-playlist",
        "--newline",  # one progress line per update, parseable line by line
        "--progress",
        "--output",
        output_template,
    ]

    if settings.embed_thumbnail:
        cmd.append("--embed-thumbnail")

    cmd.extend(settings.worker_args)
    cmd.extend(["--", url])
    return cmd


def check_yt_dlp(executable: str = YT_DLP) -> bool:
    """Check if yt-dlp is available on PATH."""
    return shutil.which(executable) is not None


def check_ffmpeg() -> bool:
    """Check if FFmpeg is available on PATH (yt-dlp needs it to convert)."""
    return shutil.which("ffmpeg") is not None
