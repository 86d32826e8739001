"""Worker process lifecycle: spawn, stream progress, control, finish."""

from __future__ import annotations

import logging
import subprocess  # nosec B404
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from yt_audio_queue.config.settings import Settings
from yt_audio_queue.core.filename import output_template
from yt_audio_queue.jobs.job import PLACEHOLDER_TITLE, Job
from yt_audio_queue.worker.command import YT_DLP, build_worker_command
from yt_audio_queue.worker.output import (
    ProgressParser,
    ProgressReading,
    clean_error_output,
    find_recent_output,
    log_warnings,
)
from yt_audio_queue.worker.process import ProcessControl, control_for, spawn_options

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL for a worker that will not exit
DEFAULT_KILL_TIMEOUT = 10.0

STDERR_JOIN_TIMEOUT = 5.0

CommandBuilder = Callable[[str, str, Settings, str], list[str]]


@dataclass(frozen=True)
class WorkerOutcome:
    """How a worker run ended.

    Attributes:
        job_id: The job the worker ran for.
        returncode: Process exit code, None if it never started.
        output_file: Converted file, reported by the worker or found by scan.
        file_size_bytes: Size of output_file, None if it could not be read.
        throughput_bytes_per_second: Size over wall-clock run time.
        error: Diagnostic text for failures.
    """

    job_id: str
    returncode: int | None
    output_file: str | None = None
    file_size_bytes: int | None = None
    throughput_bytes_per_second: float | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.returncode == 0 and self.error is None


class WorkerListener(Protocol):
    """Receives worker events. Called from worker threads."""

    def on_started(self, job_id: str) -> None: ...

    def on_progress(self, job_id: str, reading: ProgressReading) -> None: ...

    def on_finished(self, outcome: WorkerOutcome) -> None: ...


class _Handle:
    """Slot for one job's process; control is None until spawn completes."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.control: ProcessControl | None = None
        self.started_at = 0.0
        self.started_monotonic = 0.0
        self.paused = False
        self.cancelled = False
        self.exited = threading.Event()


class WorkerAdapter:
    """Runs one yt-dlp process per job and exposes pause/resume/cancel.

    `start` returns immediately; spawning and output reading happen on a
    per-job thread that reports back through a WorkerListener.

    Attributes:
        executable: yt-dlp executable name or path.
        kill_timeout: Seconds to wait after SIGTERM before SIGKILL.
    """

    def __init__(
        self,
        executable: str = YT_DLP,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        command_builder: CommandBuilder = build_worker_command,
    ) -> None:
        self.executable = executable
        self.kill_timeout = kill_timeout
        self._build_command = command_builder
        self._handles: dict[str, _Handle] = {}
        # Cancelled handles whose process has not exited yet
        self._draining: dict[str, _Handle] = {}
        self._lock = threading.Lock()

    def is_attached(self, job_id: str) -> bool:
        """Check if a live process is attached to the job."""
        with self._lock:
            handle = self._handles.get(job_id)
            return handle is not None and handle.control is not None

    def is_draining(self, job_id: str) -> bool:
        """Check if a cancelled process for the job is still shutting down."""
        with self._lock:
            return job_id in self._draining

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._handles)

    def start(self, job: Job, settings: Settings, listener: WorkerListener) -> None:
        """Launch the worker for a job.

        If a cancelled process for the same job is still shutting down, the
        new process is spawned only after it has exited.

        Raises:
            RuntimeError: If the job already has a process.
        """
        handle = _Handle(job.id)
        with self._lock:
            if job.id in self._handles:
                raise RuntimeError(f"Job {job.id} already has a worker process")
            self._handles[job.id] = handle
            previous = self._draining.get(job.id)

        title = None if job.title == PLACEHOLDER_TITLE else job.title
        thread = threading.Thread(
            target=self._run,
            args=(handle, previous, job.source_url, title, settings, listener),
            name=f"worker-{job.id[:8]}",
            daemon=True,
        )
        thread.start()

    def pause(self, job_id: str) -> bool:
        """Suspend a running worker.

        Returns:
            False if there is no live, unpaused process.

        Raises:
            UnsupportedControlError: On platforms without suspend.
        """
        with self._lock:
            handle = self._handles.get(job_id)
            if handle is None or handle.control is None or handle.paused:
                return False
            try:
                handle.control.pause()
            except ProcessLookupError:
                return False
            handle.paused = True
        logger.debug("Paused worker for %s", job_id)
        return True

    def resume(self, job_id: str) -> bool:
        """Continue a suspended worker. False if it is not paused."""
        with self._lock:
            handle = self._handles.get(job_id)
            if handle is None or handle.control is None or not handle.paused:
                return False
            try:
                handle.control.resume()
            except ProcessLookupError:
                return False
            handle.paused = False
        logger.debug("Resumed worker for %s", job_id)
        return True

    def cancel(self, job_id: str) -> bool:
        """Terminate a worker and release its handle.

        A paused worker is continued first so it can act on SIGTERM. A
        worker still being spawned is terminated as soon as it exists.

        Returns:
            False if the job has no worker.
        """
        with self._lock:
            handle = self._handles.pop(job_id, None)
            if handle is None:
                return False
            handle.cancelled = True
            control = handle.control
            was_paused = handle.paused
            self._draining[job_id] = handle

        if control is not None:
            self._terminate(control, job_id, was_paused)
        return True

    def shutdown(self) -> None:
        """Cancel every worker."""
        with self._lock:
            job_ids = list(self._handles)
        for job_id in job_ids:
            self.cancel(job_id)

    def _terminate(self, control: ProcessControl, job_id: str, was_paused: bool) -> None:
        if was_paused:
            try:
                control.resume()
            except OSError:
                pass
        control.terminate()
        logger.debug("Sent SIGTERM to worker %d for %s", control.pid, job_id)

        if self.kill_timeout > 0:
            timer = threading.Timer(self.kill_timeout, self._escalate, args=(control, job_id))
            timer.daemon = True
            timer.start()

    def _escalate(self, control: ProcessControl, job_id: str) -> None:
        if control.poll() is None:
            logger.warning(
                "Worker %d for %s ignored SIGTERM for %.0fs, killing it",
                control.pid,
                job_id,
                self.kill_timeout,
            )
            control.kill()

    def _is_current(self, handle: _Handle) -> bool:
        with self._lock:
            return self._handles.get(handle.job_id) is handle and not handle.cancelled

    def _release(self, handle: _Handle) -> bool:
        """Drop the handle if it is still ours; False if it was cancelled."""
        with self._lock:
            if self._handles.get(handle.job_id) is handle:
                del self._handles[handle.job_id]
                return not handle.cancelled
            return False

    def _run(
        self,
        handle: _Handle,
        previous: _Handle | None,
        url: str,
        title: str | None,
        settings: Settings,
        listener: WorkerListener,
    ) -> None:
        if previous is not None:
            logger.debug("Waiting for the previous worker for %s to exit", handle.job_id)
            previous.exited.wait()

        try:
            outcome = self._execute(handle, url, title, settings, listener)
        except Exception as e:
            logger.exception("Worker for %s crashed", handle.job_id)
            outcome = WorkerOutcome(handle.job_id, returncode=None, error=str(e) or "Worker crashed")
        finally:
            self._mark_exited(handle)

        if outcome is None:
            return
        if self._release(handle):
            listener.on_finished(outcome)

    def _execute(
        self,
        handle: _Handle,
        url: str,
        title: str | None,
        settings: Settings,
        listener: WorkerListener,
    ) -> WorkerOutcome | None:
        job_id = handle.job_id
        output_dir = settings.output_directory
        cmd = self._build_command(url, output_template(output_dir, title), settings, self.executable)

        if not self._is_current(handle):
            # Cancelled before spawning
            return None

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            process = subprocess.Popen(  # nosec B603
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
                errors="replace",
                **spawn_options(),
            )
        except FileNotFoundError:
            return WorkerOutcome(job_id, None, error=f"{cmd[0]} not found. Please install yt-dlp.")
        except (OSError, subprocess.SubprocessError) as e:
            return WorkerOutcome(job_id, None, error=f"Could not start worker: {e}")

        control = control_for(process)
        with self._lock:
            attached = self._handles.get(job_id) is handle and not handle.cancelled
            if attached:
                handle.control = control
                handle.started_at = time.time()
                handle.started_monotonic = time.monotonic()

        if not attached:
            # Cancelled while spawning
            self._terminate(control, job_id, was_paused=False)
            process.communicate()
            return None

        logger.info("Started worker %d for %s", process.pid, job_id)
        listener.on_started(job_id)

        stderr_lines: list[str] = []
        stderr_thread = threading.Thread(
            target=_read_stderr, args=(process, stderr_lines), daemon=True
        )
        stderr_thread.start()

        parser = ProgressParser(settings.audio_format)
        if process.stdout:
            for raw in process.stdout:
                line = raw.strip()
                if not line:
                    continue
                reading = parser.feed(line)
                if reading is not None and self._is_current(handle):
                    listener.on_progress(job_id, reading)

        returncode = process.wait()
        stderr_thread.join(timeout=STDERR_JOIN_TIMEOUT)
        stderr = "".join(stderr_lines)

        if returncode != 0:
            return WorkerOutcome(job_id, returncode, error=clean_error_output(stderr))

        log_warnings(stderr, job_id)
        return self._completed_outcome(handle, parser, settings, returncode)

    def _mark_exited(self, handle: _Handle) -> None:
        with self._lock:
            if self._draining.get(handle.job_id) is handle:
                del self._draining[handle.job_id]
        handle.exited.set()

    def _completed_outcome(
        self,
        handle: _Handle,
        parser: ProgressParser,
        settings: Settings,
        returncode: int,
    ) -> WorkerOutcome:
        output_file = parser.output_file
        if not output_file:
            found = find_recent_output(
                settings.output_directory, settings.audio_format, handle.started_at
            )
            if found is not None:
                output_file = str(found)
                logger.debug("Output for %s found by directory scan: %s", handle.job_id, found)

        file_size = _file_size(output_file)
        elapsed = time.monotonic() - handle.started_monotonic
        throughput = file_size / elapsed if file_size and elapsed > 0 else None

        return WorkerOutcome(
            handle.job_id,
            returncode,
            output_file=output_file,
            file_size_bytes=file_size,
            throughput_bytes_per_second=throughput,
        )


def _read_stderr(process: subprocess.Popen[str], stderr_lines: list[str]) -> None:
    """Read stderr in a separate thread to prevent deadlock."""
    if not process.stderr:
        return
    for line in process.stderr:
        stderr_lines.append(line)


def _file_size(path: str | None) -> int | None:
    if not path:
        return None
    try:
        return Path(path).stat().st_size
    except OSError:
        return None
