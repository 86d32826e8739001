"""Download feature - yt-dlp lookups for submitted URLs."""

from yt_audio_queue.download.resolver import (
    MediaDetails,
    ResolvedSource,
    SourceResolver,
    YtDlpResolver,
    is_playlist,
)

__all__ = [
    "MediaDetails",
    "ResolvedSource",
    "SourceResolver",
    "YtDlpResolver",
    "is_playlist",
]
