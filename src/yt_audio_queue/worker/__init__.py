"""Worker feature - yt-dlp process management and output parsing."""

from yt_audio_queue.worker.adapter import WorkerAdapter, WorkerListener, WorkerOutcome
from yt_audio_queue.worker.command import build_worker_command, check_ffmpeg, check_yt_dlp
from yt_audio_queue.worker.output import ProgressParser, ProgressReading, clean_error_output

__all__ = [
    "ProgressParser",
    "ProgressReading",
    "WorkerAdapter",
    "WorkerListener",
    "WorkerOutcome",
    "build_worker_command",
    "check_ffmpeg",
    "check_yt_dlp",
    "clean_error_output",
]
