"""Download queue for audio from YouTube and other sites."""

from yt_audio_queue.core import QueueError, SubmissionError, ToolNotFoundError

__version__ = "0.1.0"
__metadata__ = {
    "name": "yt-audio-queue",
    "version": __version__,
    "license": "MIT",
    "python": ">=3.12",
}
__all__ = [
    "QueueError",
    "SubmissionError",
    "ToolNotFoundError",
    "__metadata__",
    "__version__",
]
