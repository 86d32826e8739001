"""Rich progress display for yt-audio-queue."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table
from rich.text import Text

from yt_audio_queue.jobs.events import EventType, QueueEvent
from yt_audio_queue.storage.history import HistoryRecord

# Global console instance for consistent output
console = Console()

_TASK_DESCRIPTION_FORMAT = "[bold blue]{task.description}"

# Longest title shown in a progress row
MAX_DESCRIPTION_LENGTH = 48

_STATUS_STYLES = {
    "pending": "dim",
    "running": "cyan",
    "paused": "yellow",
    "completed": "green",
    "error": "red",
    "cancelled": "magenta",
}


class StatusColumn(ProgressColumn):
    """Display the job status, or the phase while it is running.

    Reads the `status` and `phase` task fields set by QueueProgressView.
    """

    def render(self, task: Task) -> Text:
        """Render the status column.

        Args:
            task: The Rich Task to render the status for.

        Returns:
            Styled status text.
        """
        status = task.fields.get("status", "pending")
        phase = task.fields.get("phase")
        label = phase if status == "running" and phase else status
        return Text(label, style=_STATUS_STYLES.get(status, ""))


def create_queue_progress() -> Progress:
    """Create Rich progress display with one row per queued job.

    Displays: spinner, title, progress bar, percentage and status.

    Returns:
        Configured Progress instance.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn(_TASK_DESCRIPTION_FORMAT),
        BarColumn(),
        TaskProgressColumn(),
        StatusColumn(),
        console=console,
        transient=False,
    )


def _describe(payload: dict[str, Any]) -> str:
    title = str(payload.get("title") or payload.get("source_url") or payload.get("id", ""))
    if len(title) > MAX_DESCRIPTION_LENGTH:
        title = title[: MAX_DESCRIPTION_LENGTH - 3] + "..."
    return title


class QueueProgressView:
    """Keeps a Progress display in step with queue events.

    Attributes:
        progress: The Progress instance being driven.
    """

    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self._tasks: dict[str, TaskID] = {}

    def load(self, jobs: list[dict[str, Any]]) -> None:
        """Add rows for a queue snapshot."""
        for payload in jobs:
            self._upsert(payload)

    def handle(self, event: QueueEvent) -> None:
        """Apply one event to the display."""
        if event.type is EventType.REMOVED:
            task_id = self._tasks.pop(event.job_id, None)
            if task_id is not None:
                self.progress.remove_task(task_id)
            return

        self._upsert(event.payload)

    def _upsert(self, payload: dict[str, Any]) -> None:
        job_id = payload["id"]
        fields = {
            "description": _describe(payload),
            "completed": payload.get("progress_percent", 0.0),
            "status": payload.get("status", "pending"),
            "phase": payload.get("phase"),
        }
        task_id = self._tasks.get(job_id)
        if task_id is None:
            self._tasks[job_id] = self.progress.add_task(total=100, **fields)
        else:
            self.progress.update(task_id, **fields)


def _short_time(value: str | None) -> str:
    # ISO timestamp down to minutes
    return value[:16].replace("T", " ") if value else ""


def history_table(records: list[HistoryRecord]) -> Table:
    """Build a table of history records.

    Args:
        records: Records to show, in display order.

    Returns:
        Rich Table ready to print.
    """
    table = Table(title="Download history")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Finished")

    for record in records:
        status = record.status.value
        table.add_row(
            record.id[:8],
            record.title,
            Text(status, style=_STATUS_STYLES.get(status, "")),
            f"{record.progress:.0f}%",
            _short_time(record.finished_at),
        )
    return table


def stats_table(counts: dict[str, int]) -> Table:
    """Build a table of per-status counts."""
    table = Table(title="Download statistics")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in counts.items():
        table.add_row(Text(status, style=_STATUS_STYLES.get(status, "bold")), str(count))
    return table


def print_success(message: str) -> None:
    """Print a success message.

    Args:
        message: The message to print.
    """
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message.

    Args:
        message: The message to print.
    """
    console.print(f"[red]✗[/red] {message}", style="red")


def print_warning(message: str) -> None:
    """Print a warning message.

    Args:
        message: The message to print.
    """
    console.print(f"[yellow]![/yellow] {message}", style="yellow")


def print_info(message: str) -> None:
    """Print an info message.

    Args:
        message: The message to print.
    """
    console.print(f"[blue]→[/blue] {message}")
