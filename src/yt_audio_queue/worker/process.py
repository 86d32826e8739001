"""Per-platform control of a running worker process."""

from __future__ import annotations

import os
import signal
import subprocess  # nosec B404
import sys
from typing import Any, Protocol

from yt_audio_queue.core.errors import UnsupportedControlError


class ProcessControl(Protocol):
    """Capabilities the queue needs from a live worker process."""

    @property
    def pid(self) -> int: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    def poll(self) -> int | None: ...


class PosixProcessControl:
    """Signals the worker's whole process group.

    yt-dlp runs FFmpeg as a child, so suspending only the parent would
    leave the conversion running.
    """

    def __init__(self, process: subprocess.Popen[str]) -> None:
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    def _signal(self, sig: signal.Signals) -> None:
        # start_new_session=True made the worker its own group leader
        os.killpg(self._process.pid, sig)

    def pause(self) -> None:
        self._signal(signal.SIGSTOP)

    def resume(self) -> None:
        self._signal(signal.SIGCONT)

    def terminate(self) -> None:
        try:
            self._signal(signal.SIGTERM)
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        try:
            self._signal(signal.SIGKILL)
        except ProcessLookupError:
            pass

    def poll(self) -> int | None:
        return self._process.poll()


class WindowsProcessControl:
    """Windows has no suspend/continue signals; pause and resume are refused."""

    def __init__(self, process: subprocess.Popen[str]) -> None:
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    def pause(self) -> None:
        raise UnsupportedControlError("pause", "Windows")

    def resume(self) -> None:
        raise UnsupportedControlError("resume", "Windows")

    def terminate(self) -> None:
        try:
            self._process.terminate()
        except OSError:
            pass

    def kill(self) -> None:
        try:
            self._process.kill()
        except OSError:
            pass

    def poll(self) -> int | None:
        return self._process.poll()


def spawn_options() -> dict[str, Any]:
    """Popen keyword arguments that put the worker in its own process group."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def control_for(process: subprocess.Popen[str]) -> ProcessControl:
    if sys.platform == "win32":
        return WindowsProcessControl(process)
    return PosixProcessControl(process)
