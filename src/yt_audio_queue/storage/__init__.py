"""Storage - durable download history."""

from yt_audio_queue.storage.history import (
    HistoryRecord,
    HistoryStore,
    SqliteHistoryStore,
)

__all__ = ["HistoryRecord", "HistoryStore", "SqliteHistoryStore"]
