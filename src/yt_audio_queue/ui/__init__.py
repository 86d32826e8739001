"""UI feature - Rich progress display and console output."""

from yt_audio_queue.ui.progress import (
    QueueProgressView,
    StatusColumn,
    console,
    create_queue_progress,
    history_table,
    print_error,
    print_info,
    print_success,
    print_warning,
    stats_table,
)

__all__ = [
    "QueueProgressView",
    "StatusColumn",
    "console",
    "create_queue_progress",
    "history_table",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "stats_table",
]
