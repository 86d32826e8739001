"""CLI implementation for yt-audio-queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.logging import RichHandler

from yt_audio_queue import __version__
from yt_audio_queue.config import (
    VALID_FORMATS,
    VALID_QUALITIES,
    JsonSettingsStore,
    SettingsProvider,
    StaticSettings,
    coerce_setting,
)
from yt_audio_queue.core import ToolNotFoundError, format_error
from yt_audio_queue.core.errors import SubmissionError
from yt_audio_queue.download import YtDlpResolver
from yt_audio_queue.jobs import JobStatus, SkippedItem, SkipReason
from yt_audio_queue.jobs.service import QueueService
from yt_audio_queue.storage import SqliteHistoryStore
from yt_audio_queue.ui import (
    QueueProgressView,
    console,
    create_queue_progress,
    history_table,
    print_error,
    print_info,
    print_success,
    print_warning,
    stats_table,
)
from yt_audio_queue.worker import WorkerAdapter, check_ffmpeg, check_yt_dlp

logger = logging.getLogger(__name__)

APP_NAME = "yt-audio-queue"
APP_DIR = Path(typer.get_app_dir(APP_NAME))

# Seconds between event drains while waiting for the queue to empty
POLL_INTERVAL = 0.1

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

# Create Typer app
app = typer.Typer(
    name=APP_NAME,
    help="Queue audio downloads from YouTube and other sites.",
    add_completion=False,
    no_args_is_help=True,
)
settings_app = typer.Typer(help="Show or change saved settings.", no_args_is_help=True)
app.add_typer(settings_app, name="settings")


@dataclass
class AppState:
    """Paths shared by every command."""

    config_path: Path
    db_path: Path


def setup_logging(verbose: bool) -> None:
    """Route log records through Rich.

    Args:
        verbose: Show DEBUG records instead of warnings only.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def validate_format(value: str | None) -> str | None:
    """Validate and normalize audio format.

    Args:
        value: The format string to validate, or None to keep the saved one.

    Returns:
        Normalized format string (lowercase).

    Raises:
        typer.BadParameter: If format is not valid.
    """
    if value is None:
        return None
    normalized = value.lower()
    if normalized not in VALID_FORMATS:
        raise typer.BadParameter(
            f"Invalid format '{value}'. Valid formats: {', '.join(VALID_FORMATS)}"
        )
    return normalized


def validate_quality(value: str | None) -> str | None:
    if value is not None and value not in VALID_QUALITIES:
        raise typer.BadParameter(
            f"Invalid quality '{value}'. Valid options: {', '.join(VALID_QUALITIES)}"
        )
    return value


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print(f"{APP_NAME} version {__version__}")
        raise typer.Exit()


def open_history(state: AppState) -> SqliteHistoryStore:
    """Open the history database and fail records a previous run left running."""
    history = SqliteHistoryStore(state.db_path)
    history.recover_interrupted()
    return history


def create_service(provider: SettingsProvider, history: SqliteHistoryStore) -> QueueService:
    """Wire a queue service to yt-dlp."""
    return QueueService(provider, history, YtDlpResolver(), WorkerAdapter())


def settings_provider(state: AppState, **overrides: Any) -> SettingsProvider:
    """Saved settings, or a fixed copy with command-line overrides applied.

    Raises:
        ValueError: If an override fails validation.
    """
    store = JsonSettingsStore(state.config_path)
    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return store
    return StaticSettings(replace(store.get(), **changes))


def require_tools() -> None:
    """Exit with the config/tool error code if yt-dlp or FFmpeg is missing."""
    for tool, present in (("yt-dlp", check_yt_dlp()), ("ffmpeg", check_ffmpeg())):
        if not present:
            print_error(format_error(ToolNotFoundError(tool)))
            raise typer.Exit(code=EXIT_CONFIG)


def describe_skip(skipped: SkippedItem) -> str:
    name = skipped.title or skipped.url
    if skipped.reason is SkipReason.ALREADY_DOWNLOADED:
        when = f" on {skipped.downloaded_at}" if skipped.downloaded_at else ""
        return f"Skipped {name}: already downloaded{when} (use --force to download again)"
    return f"Skipped {name}: already in the queue"


def watch_queue(service: QueueService) -> int:
    """Show live progress until the queue is idle.

    Ctrl+C cancels every job.

    Returns:
        Exit code: 0 if every job completed, 1 otherwise.
    """
    snapshot, subscription = service.subscribe()
    view = QueueProgressView(create_queue_progress())
    interrupted = False

    with subscription, view.progress:
        view.load(snapshot)
        try:
            while not service.wait_until_idle(timeout=POLL_INTERVAL):
                for event in subscription.drain():
                    view.handle(event)
        except KeyboardInterrupt:
            interrupted = True
            print_warning("Interrupted, cancelling downloads...")
            service.cancel_all()
        for event in subscription.drain():
            view.handle(event)

    jobs = service.snapshot()
    completed = [job for job in jobs if job["status"] == JobStatus.COMPLETED.value]
    failed = [job for job in jobs if job["status"] == JobStatus.ERROR.value]
    cancelled = [job for job in jobs if job["status"] == JobStatus.CANCELLED.value]

    for job in completed:
        print_success(f"Saved: {job['output_file'] or job['title']}")
    for job in failed:
        print_error(f"{job['title']}: {job['error_detail']}")

    summary = f"\nCompleted: {len(completed)} succeeded, {len(failed)} failed"
    if cancelled:
        summary += f", {len(cancelled)} cancelled"
    print_info(summary)

    if interrupted or failed or cancelled:
        return EXIT_FAILURE
    return EXIT_OK


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path,
        typer.Option(
            "--config",
            envvar="YT_AUDIO_QUEUE_CONFIG",
            help="Settings file.",
            dir_okay=False,
        ),
    ] = APP_DIR / "settings.json",
    db: Annotated[
        Path,
        typer.Option(
            "--db",
            envvar="YT_AUDIO_QUEUE_DB",
            help="Download history database.",
            dir_okay=False,
        ),
    ] = APP_DIR / "history.db",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-V", help="Show debug logging."),
    ] = False,
    version: Annotated[  # noqa: ARG001
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Queue audio downloads from YouTube and other sites."""
    setup_logging(verbose)
    ctx.obj = AppState(config_path=config, db_path=db)


@app.command()
def download(
    ctx: typer.Context,
    urls: Annotated[
        list[str],
        typer.Argument(
            help="One or more video or playlist URLs to download.",
            show_default=False,
        ),
    ],
    collection: Annotated[
        bool,
        typer.Option(
            "--collection",
            "-c",
            help="Group the downloads of each URL as one collection.",
        ),
    ] = False,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-F",
            help="Download even if already queued or downloaded.",
        ),
    ] = False,
    audio_format: Annotated[
        str | None,
        typer.Option(
            "--format",
            "-f",
            help="Output audio format: mp3, m4a, wav, opus [default: saved setting]",
            callback=validate_format,
        ),
    ] = None,
    quality: Annotated[
        str | None,
        typer.Option(
            "--quality",
            "-q",
            help="Audio quality: 0 (best), 128, 192, 320",
            callback=validate_quality,
        ),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output directory for downloaded files.",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option(
            "--concurrency",
            "-j",
            help="Number of simultaneous downloads (1-5).",
            min=1,
            max=5,
        ),
    ] = None,
    no_thumbnail: Annotated[
        bool,
        typer.Option(
            "--no-thumbnail",
            help="Skip embedding the thumbnail as cover art.",
        ),
    ] = False,
) -> None:
    """Download audio from video URLs and save locally."""
    state: AppState = ctx.obj
    require_tools()

    try:
        provider = settings_provider(
            state,
            audio_format=audio_format,
            audio_quality=quality,
            output_directory=output,
            concurrency_limit=concurrency,
            embed_thumbnail=False if no_thumbnail else None,
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(code=EXIT_CONFIG) from None

    history_store = open_history(state)
    try:
        with create_service(provider, history_store) as service:
            batch = service.submit_batch(urls, collection=collection, force=force)
            for error in batch.errors:
                print_error(format_error(SubmissionError(error.target, error.error)))
            for skipped in batch.skipped:
                print_warning(describe_skip(skipped))

            if not batch.jobs and not service.snapshot():
                print_info("Nothing to download")
                exit_code = EXIT_FAILURE if batch.has_failures else EXIT_OK
            else:
                print_info(f"Queued {batch.succeeded} download(s)")
                exit_code = watch_queue(service)
                if batch.has_failures:
                    exit_code = EXIT_FAILURE
    finally:
        history_store.close()

    raise typer.Exit(code=exit_code)


@app.command()
def retry(
    ctx: typer.Context,
    job_ids: Annotated[
        list[str],
        typer.Argument(help="Ids of failed or cancelled downloads.", show_default=False),
    ],
) -> None:
    """Download failed or cancelled jobs again."""
    state: AppState = ctx.obj
    require_tools()

    history_store = open_history(state)
    try:
        with create_service(settings_provider(state), history_store) as service:
            retried = 0
            for job_id in job_ids:
                result = service.retry(job_id)
                if result.success:
                    retried += 1
                else:
                    print_error(f"{job_id}: {result.reason}")

            if not retried:
                exit_code = EXIT_FAILURE
            else:
                exit_code = watch_queue(service)
                if retried < len(job_ids):
                    exit_code = EXIT_FAILURE
    finally:
        history_store.close()

    raise typer.Exit(code=exit_code)


@app.command("retry-all")
def retry_all(ctx: typer.Context) -> None:
    """Download every failed or cancelled job again."""
    state: AppState = ctx.obj
    require_tools()

    history_store = open_history(state)
    try:
        with create_service(settings_provider(state), history_store) as service:
            result = service.retry_all()
            for error in result.errors:
                print_error(f"{error.target}: {error.error}")
            if not result.count:
                print_info("Nothing to retry")
                exit_code = EXIT_FAILURE if result.has_errors else EXIT_OK
            else:
                print_info(f"Retrying {result.count} download(s)")
                exit_code = watch_queue(service)
    finally:
        history_store.close()

    raise typer.Exit(code=exit_code)


@app.command()
def history(
    ctx: typer.Context,
    status: Annotated[
        str | None,
        typer.Option("--status", "-s", help="Only show downloads with this status."),
    ] = None,
    search: Annotated[
        str | None,
        typer.Option("--search", help="Filter by title or URL."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Number of rows to show.", min=1),
    ] = 20,
) -> None:
    """Show recent downloads."""
    state: AppState = ctx.obj
    try:
        status_filter = JobStatus(status) if status else None
    except ValueError:
        valid = ", ".join(s.value for s in JobStatus)
        print_error(f"Invalid status '{status}'. Valid options: {valid}")
        raise typer.Exit(code=EXIT_CONFIG) from None

    store = SqliteHistoryStore(state.db_path)
    try:
        records = store.list_history(status=status_filter, search=search, limit=limit)
    finally:
        store.close()

    if not records:
        print_info("No downloads yet")
        return
    console.print(history_table(records))


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show download counts by status."""
    state: AppState = ctx.obj
    store = SqliteHistoryStore(state.db_path)
    try:
        counts = store.stats()
    finally:
        store.close()
    console.print(stats_table(counts))


@settings_app.command("show")
def settings_show(ctx: typer.Context) -> None:
    """Show the saved settings."""
    state: AppState = ctx.obj
    current = JsonSettingsStore(state.config_path).get()
    for key, value in current.to_dict().items():
        console.print(f"[bold]{key}[/bold] = {value}")


@settings_app.command("set")
def settings_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Setting name.")],
    value: Annotated[str, typer.Argument(help="New value.")],
) -> None:
    """Change one setting."""
    state: AppState = ctx.obj
    store = JsonSettingsStore(state.config_path)
    try:
        store.update(**{key: coerce_setting(key, value)})
    except KeyError:
        print_error(f"Unknown setting '{key}'")
        raise typer.Exit(code=EXIT_CONFIG) from None
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(code=EXIT_CONFIG) from None
    print_success(f"{key} = {value}")


@settings_app.command("reset")
def settings_reset(ctx: typer.Context) -> None:
    """Restore default settings."""
    state: AppState = ctx.obj
    JsonSettingsStore(state.config_path).reset()
    print_success("Settings reset to defaults")


if __name__ == "__main__":
    app()
