"""Queue orchestration: admission, control operations and event emission.

All registry mutation, scheduling and event publishing happen on a single
coordination thread. Public methods post a command to that thread and wait
for its result; worker threads post their reports the same way without
waiting.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Protocol

from yt_audio_queue.config.settings import Settings, SettingsProvider
from yt_audio_queue.core.errors import QueueError, SubmissionError, UnsupportedControlError
from yt_audio_queue.download.resolver import MediaDetails, ResolvedSource, SourceResolver
from yt_audio_queue.jobs.events import EventBus, EventType, QueueEvent, Subscription
from yt_audio_queue.jobs.job import PLACEHOLDER_TITLE, Job, JobKind, JobStatus
from yt_audio_queue.jobs.registry import JobRegistry
from yt_audio_queue.jobs.results import (
    BatchSubmitResult,
    BulkResult,
    ControlResult,
    ItemError,
    QueueStats,
    SkippedItem,
    SkipReason,
    SubmitResult,
)
from yt_audio_queue.jobs.retry import RetryPolicy
from yt_audio_queue.storage.history import HistoryRecord, HistoryStore
from yt_audio_queue.worker.adapter import WorkerAdapter, WorkerListener, WorkerOutcome
from yt_audio_queue.worker.output import ProgressReading

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"

# Concurrent metadata lookups for placeholder titles
PREFETCH_WORKERS = 2

STOP_TIMEOUT = 10.0

# How often a blocked caller checks that the coordination thread is alive
CALL_CHECK_INTERVAL = 1.0

_Command = tuple[Callable[..., Any], tuple[Any, ...], "Future[Any] | None"]


class Worker(Protocol):
    """What the queue needs from a worker process backend."""

    def start(self, job: Job, settings: Settings, listener: WorkerListener) -> None: ...

    def pause(self, job_id: str) -> bool: ...

    def resume(self, job_id: str) -> bool: ...

    def cancel(self, job_id: str) -> bool: ...

    def shutdown(self) -> None: ...


class _RunListener:
    """Forwards one run's worker reports to the coordination thread.

    Reports carry the run number so that a late report from a cancelled run
    never touches a later run of the same job.
    """

    def __init__(self, service: QueueService, run: int) -> None:
        self._service = service
        self._run = run

    def on_started(self, job_id: str) -> None:
        self._service._post(self._service._handle_started, job_id, self._run)

    def on_progress(self, job_id: str, reading: ProgressReading) -> None:
        self._service._post(self._service._handle_progress, job_id, self._run, reading)

    def on_finished(self, outcome: WorkerOutcome) -> None:
        self._service._post(self._service._handle_finished, outcome, self._run)


class QueueService:
    """Download queue with bounded concurrency.

    Use as a context manager, or call `start()` and `close()`:

        with QueueService(settings, history, resolver) as service:
            service.submit("https://www.youtube.com/watch?v=...")
            service.wait_until_idle()

    Attributes:
        bus: Event bus carrying job lifecycle events.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        history: HistoryStore,
        resolver: SourceResolver,
        worker: Worker | None = None,
        *,
        bus: EventBus | None = None,
        retry_policy: RetryPolicy | None = None,
        prefetch_metadata: bool = True,
        restore_pending: bool = True,
    ) -> None:
        self._settings = settings
        self._history = history
        self._resolver = resolver
        self._worker: Worker = worker if worker is not None else WorkerAdapter()
        self.bus = bus if bus is not None else EventBus()
        self._retry_policy = retry_policy or RetryPolicy()
        self._prefetch_metadata = prefetch_metadata
        self._restore_pending = restore_pending

        self._registry = JobRegistry()
        self._runs: dict[str, int] = {}
        self._run_ids = itertools.count(1)
        self._wake_timer: threading.Timer | None = None
        self._stopping = False

        self._commands: queue.Queue[_Command | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._running = False
        self._idle = threading.Event()
        self._idle.set()
        self._prefetcher: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the coordination thread. Does nothing if already started."""
        if self._running:
            return
        self._running = True
        self._stopping = False
        if self._prefetch_metadata:
            self._prefetcher = ThreadPoolExecutor(
                max_workers=PREFETCH_WORKERS, thread_name_prefix="metadata"
            )
        self._thread = threading.Thread(target=self._loop, name="queue-loop", daemon=True)
        self._thread.start()
        if self._restore_pending:
            self._call(self._restore)

    def close(self) -> None:
        """Cancel running and paused jobs and stop the coordination thread.

        Pending jobs stay pending in history and are restored on the next start.
        """
        if not self._running:
            return
        try:
            self._call(self._shutdown)
        finally:
            self._running = False
            self._commands.put(None)
            if self._thread is not None:
                self._thread.join(timeout=STOP_TIMEOUT)
            if self._prefetcher is not None:
                self._prefetcher.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> QueueService:
        self.start()
        return self

    def __exit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        self.close()

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, url: str, *, collection: bool = False, force: bool = False) -> SubmitResult:
        """Queue a URL, expanding playlists into collection members.

        Args:
            url: Media or playlist URL.
            collection: Treat the URL as a collection even if it resolves to
                a single item.
            force: Skip duplicate detection.

        Returns:
            Created jobs and the duplicates that were skipped.

        Raises:
            SubmissionError: If the URL cannot be resolved; nothing is queued.
        """
        if not url.startswith(("http://", "https://")):
            raise SubmissionError(url, "URL must start with http:// or https://")
        source = self._resolver.resolve(url)
        return self._call(self._enqueue, source, collection, force)

    def submit_batch(
        self, urls: Iterable[str], *, collection: bool = False, force: bool = False
    ) -> BatchSubmitResult:
        """Submit URLs one after another; a failing URL never stops the batch."""
        batch = BatchSubmitResult()
        for url in urls:
            try:
                batch.absorb(self.submit(url, collection=collection, force=force))
            except SubmissionError as e:
                logger.warning("Could not queue %s: %s", url, e.message)
                batch.errors.append(ItemError(url, e.message))
            except Exception as e:
                logger.exception("Unexpected error queueing %s", url)
                batch.errors.append(ItemError(url, str(e)))
        return batch

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    def pause(self, job_id: str) -> ControlResult:
        return self._call(self._pause, job_id)

    def resume(self, job_id: str) -> ControlResult:
        return self._call(self._resume, job_id)

    def cancel(self, job_id: str) -> ControlResult:
        return self._call(self._cancel, job_id)

    def retry(self, job_id: str) -> ControlResult:
        """Re-queue a failed or cancelled job from its history record."""
        return self._call(self._retry, job_id)

    def remove(self, job_id: str) -> ControlResult:
        """Drop a finished job from the queue; its history record is kept."""
        return self._call(self._remove, job_id)

    def pause_all(self) -> BulkResult:
        return self._call(self._bulk, self._pause, JobStatus.RUNNING)

    def resume_all(self) -> BulkResult:
        return self._call(self._bulk, self._resume, JobStatus.PAUSED)

    def cancel_all(self) -> BulkResult:
        return self._call(self._cancel_all)

    def retry_all(self) -> BulkResult:
        """Retry every failed or cancelled job in history, oldest first."""
        return self._call(self._retry_all)

    def clear_finished(self) -> BulkResult:
        """Drop every finished job from the queue."""
        return self._call(self._clear_finished)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> list[dict[str, Any]]:
        return self._call(self._snapshot)

    def get(self, job_id: str) -> dict[str, Any] | None:
        return self._call(self._get, job_id)

    def stats(self) -> QueueStats:
        return self._call(self._stats)

    def subscribe(self) -> tuple[list[dict[str, Any]], Subscription]:
        """Join the event stream.

        Returns:
            The current jobs and a subscription that receives every event
            published after that snapshot was taken.
        """
        return self._call(self._subscribe)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until no job is pending, running or paused.

        Returns:
            False if the timeout expired first.
        """
        return self._idle.wait(timeout)

    # ------------------------------------------------------------------
    # Coordination thread
    # ------------------------------------------------------------------

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run fn on the coordination thread and return its result."""
        if threading.current_thread() is self._thread:
            return fn(*args)
        if not self._running:
            raise QueueError("Queue service is not running")
        future: Future[Any] = Future()
        self._commands.put((fn, args, future))
        while True:
            try:
                return future.result(timeout=CALL_CHECK_INTERVAL)
            except TimeoutError:
                thread = self._thread
                if (thread is None or not thread.is_alive()) and future.cancel():
                    raise QueueError("Queue service is not running") from None

    def _post(self, fn: Callable[..., Any], *args: Any) -> None:
        """Queue fn for the coordination thread without waiting."""
        if not self._running:
            logger.debug("Dropping %s, queue service stopped", fn.__name__)
            return
        self._commands.put((fn, args, None))

    def _loop(self) -> None:
        while True:
            command = self._commands.get()
            if command is None:
                self._reject_remaining()
                return
            fn, args, future = command
            if future is not None and not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args)
            except Exception as e:
                self._refresh_idle()
                if future is None:
                    logger.exception("Queue command %s failed", fn.__name__)
                else:
                    future.set_exception(e)
                continue
            self._refresh_idle()
            if future is not None:
                future.set_result(result)

    def _reject_remaining(self) -> None:
        """Fail commands that raced close() into the queue after the stop marker."""
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return
            if command is None:
                continue
            fn, _, future = command
            if future is not None and future.set_running_or_notify_cancel():
                future.set_exception(QueueError("Queue service is not running"))
            else:
                logger.debug("Dropping %s, queue service stopped", fn.__name__)

    def _refresh_idle(self) -> None:
        if any(job.status.is_active for job in self._registry):
            self._idle.clear()
        else:
            self._idle.set()

    def _emit(self, event_type: EventType, job: Job) -> None:
        self.bus.publish(QueueEvent(event_type, job.id, job.to_dict()))

    def _persist(self, write: Callable[..., Any], job_id: str, *args: Any, **kwargs: Any) -> None:
        """Write to history; failures are logged and never reach the caller."""
        try:
            write(job_id, *args, **kwargs)
        except Exception:
            logger.warning(
                "History write %s failed for %s",
                getattr(write, "__name__", "write"),
                job_id,
                exc_info=True,
            )

    # Everything below runs on the coordination thread.

    def _restore(self) -> None:
        """Bring pending history records back into the queue."""
        try:
            records = self._history.list_by_status(JobStatus.PENDING)
        except Exception:
            logger.warning("Could not read pending downloads from history", exc_info=True)
            return
        for record in records:
            if record.id in self._registry:
                continue
            job = _job_from_record(record, keep_submitted=True)
            self._registry.insert(job)
            self._emit(EventType.ADDED, job)
            self._schedule_prefetch(job)
        if records:
            logger.info("Restored %d pending download(s)", len(records))
        self._run_next()

    def _shutdown(self) -> None:
        """Stop admitting and cancel live workers; pending jobs stay pending in history."""
        self._stopping = True
        if self._wake_timer is not None:
            self._wake_timer.cancel()
            self._wake_timer = None
        active = self._registry.filter(lambda job: job.status.holds_slot)
        for job in active:
            self._cancel(job.id)
        self._worker.shutdown()

    def _enqueue(self, source: ResolvedSource, collection: bool, force: bool) -> SubmitResult:
        result = SubmitResult()
        kind = JobKind.SINGLE
        collection_name = None
        if collection or source.is_collection:
            kind = JobKind.COLLECTION_MEMBER
            result.collection_id = uuid.uuid4().hex
            collection_name = source.collection_name

        for entry in source.entries:
            if not force:
                skipped = self._find_duplicate(entry.url)
                if skipped is not None:
                    logger.info("Skipping %s: %s", entry.url, skipped.reason.value)
                    result.skipped.append(skipped)
                    continue

            job = Job(
                source_url=entry.url,
                title=entry.title or PLACEHOLDER_TITLE,
                channel=entry.channel,
                thumbnail=entry.thumbnail,
                duration_seconds=entry.duration_seconds,
                kind=kind,
                collection_id=result.collection_id,
                collection_name=collection_name,
            )
            self._registry.insert(job)
            self._create_record(job)
            self._emit(EventType.ADDED, job)
            result.jobs.append(job)
            self._schedule_prefetch(job)

        self._run_next()
        return result

    def _create_record(self, job: Job) -> None:
        try:
            self._history.create_record(job)
        except Exception:
            logger.warning("Could not record %s in history", job.id, exc_info=True)

    def _find_duplicate(self, url: str) -> SkippedItem | None:
        existing = self._registry.find_active_by_url(url)
        if existing is not None:
            return SkippedItem(url, SkipReason.IN_QUEUE, existing.id, existing.title)

        record = self._history.find_active_by_url(url)
        if record is not None:
            return SkippedItem(url, SkipReason.IN_QUEUE, record.id, record.title)

        record = self._history.find_completed_by_url(url)
        if record is not None:
            return SkippedItem(
                url,
                SkipReason.ALREADY_DOWNLOADED,
                record.id,
                record.title,
                downloaded_at=record.finished_at,
            )
        return None

    def _schedule_prefetch(self, job: Job) -> None:
        if self._prefetcher is None or not job.has_placeholder_metadata:
            return
        try:
            self._prefetcher.submit(self._prefetch, job.id, job.source_url)
        except RuntimeError:
            logger.debug("Metadata prefetch unavailable for %s", job.id)

    def _prefetch(self, job_id: str, url: str) -> None:
        """Look up metadata off the coordination thread."""
        try:
            details = self._resolver.fetch_details(url)
        except Exception:
            logger.warning("Metadata lookup failed for %s", url, exc_info=True)
            return
        if details is not None:
            self._post(self._apply_details, job_id, details)

    def _apply_details(self, job_id: str, details: MediaDetails) -> None:
        job = self._registry.get(job_id)
        if job is None:
            return
        if details.title:
            job.title = details.title
        job.channel = details.channel or job.channel
        job.thumbnail = details.thumbnail or job.thumbnail
        if details.duration_seconds is not None:
            job.duration_seconds = details.duration_seconds
        self._persist(
            self._history.update_details,
            job_id,
            title=details.title or None,
            channel=details.channel,
            thumbnail=details.thumbnail,
            duration_seconds=details.duration_seconds,
        )
        if not job.status.is_terminal:
            self._emit(EventType.STATUS_CHANGE, job)

    def _run_next(self) -> None:
        """Admit pending jobs while slots are free."""
        if self._stopping:
            return
        settings = self._settings.get()
        limit = settings.concurrency_limit
        while self._registry.count(JobStatus.RUNNING, JobStatus.PAUSED) < limit:
            job = self._next_eligible()
            if job is None:
                break
            self._admit(job, settings)

    def _next_eligible(self) -> Job | None:
        now = time.monotonic()
        pending = self._registry.filter(lambda job: job.status is JobStatus.PENDING)
        eligible = [job for job in pending if job.not_before is None or job.not_before <= now]
        waiting = [job.not_before for job in pending if job.not_before is not None and job.not_before > now]
        if waiting:
            self._schedule_wake(min(waiting) - now)
        if not eligible:
            return None
        # min() keeps the first of equal timestamps, i.e. submission order
        return min(eligible, key=lambda job: job.submitted_at)

    def _schedule_wake(self, delay: float) -> None:
        if self._wake_timer is not None:
            self._wake_timer.cancel()
        self._wake_timer = threading.Timer(delay, self._post, args=(self._run_next,))
        self._wake_timer.daemon = True
        self._wake_timer.start()

    def _admit(self, job: Job, settings: Settings) -> None:
        job.mark_running()
        run = next(self._run_ids)
        self._runs[job.id] = run
        self._persist(self._history.update_status, job.id, JobStatus.RUNNING)
        try:
            self._worker.start(job, settings, _RunListener(self, run))
        except Exception as e:
            logger.exception("Could not start worker for %s", job.id)
            self._runs.pop(job.id, None)
            self._fail(job, f"Could not start worker: {e}")
            return
        logger.info("Admitted %s (%s)", job.id, job.title)

    def _is_current(self, job_id: str, run: int) -> bool:
        return self._runs.get(job_id) == run

    def _handle_started(self, job_id: str, run: int) -> None:
        job = self._registry.get(job_id)
        if job is None or not self._is_current(job_id, run):
            return
        if job.status is not JobStatus.RUNNING:
            return
        job.mark_started()
        self._emit(EventType.STATUS_CHANGE, job)

    def _handle_progress(self, job_id: str, run: int, reading: ProgressReading) -> None:
        job = self._registry.get(job_id)
        if job is None or not self._is_current(job_id, run):
            return
        if job.advance_progress(reading.percent, reading.phase):
            self._persist(self._history.update_progress, job_id, job.progress_percent)
            self._emit(EventType.PROGRESS, job)

    def _handle_finished(self, outcome: WorkerOutcome, run: int) -> None:
        job = self._registry.get(outcome.job_id)
        if job is None or not self._is_current(outcome.job_id, run):
            return
        del self._runs[outcome.job_id]
        if not job.status.holds_slot:
            return

        if outcome.success:
            job.mark_completed(
                outcome.output_file,
                outcome.file_size_bytes,
                outcome.throughput_bytes_per_second,
            )
            self._persist(
                self._history.update_status,
                job.id,
                JobStatus.COMPLETED,
                output_file=outcome.output_file,
            )
            self._persist(
                self._history.update_stats,
                job.id,
                outcome.file_size_bytes,
                outcome.throughput_bytes_per_second,
            )
            logger.info("Completed %s -> %s", job.id, outcome.output_file)
            self._emit(EventType.COMPLETE, job)
        else:
            error = outcome.error or UNKNOWN_ERROR
            settings = self._settings.get()
            if settings.auto_retry and self._retry_policy.should_retry(
                error, job.retry_count, settings.max_retries
            ):
                self._schedule_retry(job, error)
            else:
                self._fail(job, error)

        self._run_next()

    def _schedule_retry(self, job: Job, error: str) -> None:
        delay = self._retry_policy.delay_for_attempt(job.retry_count)
        job.schedule_retry(time.monotonic() + delay)
        logger.warning(
            "Download %s failed (%s), retry %d in %.1fs",
            job.id,
            error,
            job.retry_count,
            delay,
        )
        self._persist(self._history.update_status, job.id, JobStatus.PENDING)
        self._emit(EventType.STATUS_CHANGE, job)

    def _fail(self, job: Job, error: str) -> None:
        job.mark_failed(error)
        logger.warning("Download %s failed: %s", job.id, error)
        self._persist(
            self._history.update_status, job.id, JobStatus.ERROR, error_detail=error
        )
        self._emit(EventType.ERROR, job)

    def _pause(self, job_id: str) -> ControlResult:
        job = self._registry.get(job_id)
        if job is None:
            return ControlResult.rejected(job_id, "Job not found")
        if job.status is not JobStatus.RUNNING:
            return ControlResult.rejected(
                job_id, f"Job is {job.status.value}, not running", job
            )
        if job.started_at is None:
            return ControlResult.rejected(job_id, "Worker is still starting", job)
        try:
            paused = self._worker.pause(job_id)
        except UnsupportedControlError as e:
            return ControlResult.rejected(job_id, str(e), job)
        if not paused:
            return ControlResult.rejected(job_id, "No live worker process", job)

        job.mark_paused()
        self._persist(self._history.update_status, job_id, JobStatus.PAUSED)
        self._emit(EventType.STATUS_CHANGE, job)
        return ControlResult.ok(job)

    def _resume(self, job_id: str) -> ControlResult:
        job = self._registry.get(job_id)
        if job is None:
            return ControlResult.rejected(job_id, "Job not found")
        if job.status is not JobStatus.PAUSED:
            return ControlResult.rejected(job_id, f"Job is {job.status.value}, not paused", job)
        try:
            resumed = self._worker.resume(job_id)
        except UnsupportedControlError as e:
            return ControlResult.rejected(job_id, str(e), job)
        if not resumed:
            return ControlResult.rejected(job_id, "No live worker process", job)

        job.mark_resumed()
        self._persist(self._history.update_status, job_id, JobStatus.RUNNING)
        self._emit(EventType.STATUS_CHANGE, job)
        return ControlResult.ok(job)

    def _cancel(self, job_id: str) -> ControlResult:
        job = self._registry.get(job_id)
        if job is None:
            return ControlResult.rejected(job_id, "Job not found")
        if job.status.is_terminal:
            return ControlResult.rejected(job_id, f"Job is already {job.status.value}", job)

        if job.status is JobStatus.PENDING:
            job.mark_cancelled()
            self._persist(self._history.update_status, job_id, JobStatus.CANCELLED)
            self._emit(EventType.STATUS_CHANGE, job)
            self._registry.remove(job_id)
            self.bus.publish(QueueEvent(EventType.REMOVED, job_id, {"id": job_id}))
            return ControlResult.ok(job)

        self._runs.pop(job_id, None)
        try:
            self._worker.cancel(job_id)
        except OSError:
            logger.warning("Could not signal worker for %s", job_id, exc_info=True)
        job.mark_cancelled()
        logger.info("Cancelled %s", job_id)
        self._persist(self._history.update_status, job_id, JobStatus.CANCELLED)
        self._emit(EventType.STATUS_CHANGE, job)
        self._run_next()
        return ControlResult.ok(job)

    def _retry(self, job_id: str) -> ControlResult:
        record = self._history.get(job_id)
        if record is None:
            return ControlResult.rejected(job_id, "Job not found")
        if record.status not in (JobStatus.ERROR, JobStatus.CANCELLED):
            return ControlResult.rejected(
                job_id,
                f"Only failed or cancelled jobs can be retried, job is {record.status.value}",
            )

        existing = self._registry.get(job_id)
        if existing is not None:
            if existing.status.is_active:
                return ControlResult.rejected(job_id, "Job is already queued", existing)
            self._registry.remove(job_id)

        job = _job_from_record(record)
        self._registry.insert(job)
        self._persist(self._history.update_status, job_id, JobStatus.PENDING)
        self._emit(EventType.ADDED, job)
        result = ControlResult.ok(job)
        logger.info("Retrying %s", job_id)
        self._run_next()
        return result

    def _remove(self, job_id: str) -> ControlResult:
        job = self._registry.get(job_id)
        if job is None:
            return ControlResult.rejected(job_id, "Job not found")
        if job.status.is_active:
            return ControlResult.rejected(
                job_id, f"Job is {job.status.value}; cancel it before removing", job
            )
        self._registry.remove(job_id)
        self.bus.publish(QueueEvent(EventType.REMOVED, job_id, {"id": job_id}))
        return ControlResult.ok(job)

    def _bulk(
        self, operation: Callable[[str], ControlResult], status: JobStatus
    ) -> BulkResult:
        result = BulkResult()
        for job in self._registry.filter(lambda j: j.status is status):
            self._apply(operation, job.id, result)
        return result

    @staticmethod
    def _apply(
        operation: Callable[[str], ControlResult], job_id: str, result: BulkResult
    ) -> None:
        try:
            outcome = operation(job_id)
        except Exception as e:
            logger.exception("Bulk operation failed for %s", job_id)
            result.errors.append(ItemError(job_id, str(e)))
            return
        if outcome.success:
            result.count += 1
        else:
            result.errors.append(ItemError(job_id, outcome.reason))

    def _cancel_all(self) -> BulkResult:
        result = BulkResult()
        # Pending first, so cancelling a running job cannot admit one of them
        pending = self._registry.filter(lambda job: job.status is JobStatus.PENDING)
        active = self._registry.filter(lambda job: job.status.holds_slot)
        for job in (*pending, *active):
            self._apply(self._cancel, job.id, result)
        return result

    def _retry_all(self) -> BulkResult:
        result = BulkResult()
        records: list[HistoryRecord] = []
        for status in (JobStatus.ERROR, JobStatus.CANCELLED):
            records.extend(self._history.list_by_status(status))
        records.sort(key=lambda record: record.created_at)
        for record in records:
            self._apply(self._retry, record.id, result)
        return result

    def _clear_finished(self) -> BulkResult:
        result = BulkResult()
        for job in self._registry.filter(lambda j: j.status.is_terminal):
            self._apply(self._remove, job.id, result)
        return result

    def _snapshot(self) -> list[dict[str, Any]]:
        return [job.to_dict() for job in self._registry]

    def _get(self, job_id: str) -> dict[str, Any] | None:
        job = self._registry.get(job_id)
        return job.to_dict() if job else None

    def _stats(self) -> QueueStats:
        count = self._registry.count
        return QueueStats(
            total=len(self._registry),
            pending=count(JobStatus.PENDING),
            running=count(JobStatus.RUNNING),
            paused=count(JobStatus.PAUSED),
            completed=count(JobStatus.COMPLETED),
            error=count(JobStatus.ERROR),
            cancelled=count(JobStatus.CANCELLED),
        )

    def _subscribe(self) -> tuple[list[dict[str, Any]], Subscription]:
        return self._snapshot(), self.bus.subscribe()


def _job_from_record(record: HistoryRecord, keep_submitted: bool = False) -> Job:
    """Build a fresh pending job that keeps the record's id.

    Retried jobs join the back of the queue; restored jobs keep their
    original place.
    """
    job = Job(
        source_url=record.url,
        id=record.id,
        title=record.title or PLACEHOLDER_TITLE,
        channel=record.channel,
        thumbnail=record.thumbnail,
        duration_seconds=record.duration_seconds,
        kind=record.kind,
        collection_id=record.collection_id,
        collection_name=record.collection_name,
    )
    if keep_submitted:
        job.submitted_at = datetime.fromisoformat(record.created_at)
    return job
