"""Output filename handling for worker output templates."""

from __future__ import annotations

import re
from pathlib import Path

# Characters invalid on any OS (Windows is most restrictive)
INVALID_CHARS = r'[\\/:*?"<>|]'

# yt-dlp template fields use %(...)s, so a literal percent must not survive
TEMPLATE_CHARS = r"[%{}]"

MAX_TITLE_LENGTH = 100

# Placeholder used when the title is unknown; yt-dlp fills it in itself
TITLE_FIELD = "%(title)s"


def safe_title(title: str) -> str:
    """Make a title safe to embed in a yt-dlp output template.

    Args:
        title: The media title.

    Returns:
        The cleaned title, or an empty string if nothing usable remains.
    """
    if not title:
        return ""

    cleaned = re.sub(INVALID_CHARS, "", title)
    cleaned = re.sub(TEMPLATE_CHARS, "", cleaned)
    cleaned = re.sub(r"[\x00-\x1f\x7f]", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" .")

    return cleaned[:MAX_TITLE_LENGTH].rstrip(" .")


def output_template(directory: Path, title: str | None = None) -> str:
    """Build the yt-dlp output template for a job.

    A known title is baked into the filename so the result is predictable;
    otherwise yt-dlp substitutes the title it extracts.

    Args:
        directory: Directory the converted file should land in.
        title: Known title, or None/placeholder to let yt-dlp decide.

    Returns:
        Output template string for yt-dlp's -o option.
    """
    name = safe_title(title or "") or TITLE_FIELD
    return str(directory / f"{name}.%(ext)s")
