"""Queue lifecycle events and their fan-out to subscribers."""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Per-subscriber buffer; a subscriber that falls this far behind loses events
DEFAULT_SUBSCRIBER_BUFFER = 1000


class EventType(Enum):
    """Event names carried to observers."""

    ADDED = "added"
    STATUS_CHANGE = "statusChange"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"
    REMOVED = "removed"


@dataclass(frozen=True)
class QueueEvent:
    """Immutable event message.

    Attributes:
        type: What happened.
        job_id: The job the event concerns.
        payload: Job snapshot (or {"id": ...} for removals).
    """

    type: EventType
    job_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload}

    def to_sse(self) -> str:
        """Frame the event as a Server-Sent Events message."""
        return f"event: {self.type.value}\ndata: {json.dumps(self.payload)}\n\n"


class Subscription:
    """One observer's ordered view of the event stream.

    Publishing never blocks: when the buffer is full the event is dropped
    for this subscriber only and counted in `dropped`.
    """

    def __init__(self, bus: EventBus, maxsize: int = DEFAULT_SUBSCRIBER_BUFFER) -> None:
        self._bus = bus
        self._queue: queue.Queue[QueueEvent | None] = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def _offer(self, event: QueueEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1

    def get(self, timeout: float | None = None) -> QueueEvent | None:
        """Wait for the next event.

        Returns:
            The next event, or None on timeout or after close().
        """
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[QueueEvent]:
        """Return every buffered event without waiting."""
        events: list[QueueEvent] = []
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return events
            if event is not None:
                events.append(event)

    def close(self) -> None:
        """Detach from the bus and wake any blocked reader."""
        if self.closed:
            return
        self.closed = True
        self._bus.unsubscribe(self)
        # Make room for the sentinel if the buffer is full
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def __iter__(self) -> Iterator[QueueEvent]:
        while not self.closed:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> Subscription:
        return self

    def __exit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        self.close()


class EventBus:
    """In-process publish/subscribe for queue events.

    New subscribers only see events published after they join.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, maxsize: int = DEFAULT_SUBSCRIBER_BUFFER) -> Subscription:
        subscription = Subscription(self, maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, event: QueueEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("event %s for %s", event.type.value, event.job_id)
        for subscription in subscribers:
            subscription._offer(event)
