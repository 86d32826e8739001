"""Unit tests for the event bus."""

from __future__ import annotations

import json
import threading

from yt_audio_queue.jobs import EventBus, EventType, QueueEvent


def event(job_id: str = "job", kind: EventType = EventType.PROGRESS) -> QueueEvent:
    return QueueEvent(kind, job_id, {"id": job_id})


class TestQueueEvent:
    """Tests for QueueEvent framing."""

    def test_to_dict(self) -> None:
        """Test the wire shape of an event."""
        assert event(kind=EventType.STATUS_CHANGE).to_dict() == {
            "type": "statusChange",
            "payload": {"id": "job"},
        }

    def test_to_sse(self) -> None:
        """Test Server-Sent Events framing."""
        frame = event(kind=EventType.ADDED).to_sse()
        assert frame.startswith("event: added\n")
        assert frame.endswith("\n\n")
        data = frame.split("data: ", 1)[1].strip()
        assert json.loads(data) == {"id": "job"}


class TestEventBus:
    """Tests for EventBus and Subscription."""

    def test_delivery_order(self) -> None:
        """Test that a subscriber sees events in publish order."""
        bus = EventBus()
        subscription = bus.subscribe()
        for i in range(5):
            bus.publish(event(str(i)))

        assert [e.job_id for e in subscription.drain()] == ["0", "1", "2", "3", "4"]

    def test_every_subscriber_receives(self) -> None:
        """Test fan-out to several subscribers."""
        bus = EventBus()
        first, second = bus.subscribe(), bus.subscribe()
        bus.publish(event())

        assert len(first.drain()) == 1
        assert len(second.drain()) == 1

    def test_late_subscriber_misses_history(self) -> None:
        """Test that events published before subscribing are not replayed."""
        bus = EventBus()
        bus.publish(event("early"))
        subscription = bus.subscribe()
        bus.publish(event("late"))

        assert [e.job_id for e in subscription.drain()] == ["late"]

    def test_publish_without_subscribers(self) -> None:
        """Test that publishing with nobody listening is harmless."""
        EventBus().publish(event())

    def test_slow_subscriber_drops(self) -> None:
        """Test that a full buffer drops events for that subscriber only."""
        bus = EventBus()
        slow = bus.subscribe(maxsize=2)
        fast = bus.subscribe()
        for i in range(5):
            bus.publish(event(str(i)))

        assert [e.job_id for e in slow.drain()] == ["0", "1"]
        assert slow.dropped == 3
        assert len(fast.drain()) == 5
        assert fast.dropped == 0

    def test_get_timeout(self) -> None:
        """Test that get() returns None when nothing arrives."""
        subscription = EventBus().subscribe()
        assert subscription.get(timeout=0.01) is None

    def test_close_unsubscribes(self) -> None:
        """Test that a closed subscription stops receiving."""
        bus = EventBus()
        subscription = bus.subscribe()
        assert bus.subscriber_count == 1

        subscription.close()
        subscription.close()
        bus.publish(event())

        assert bus.subscriber_count == 0
        assert subscription.closed
        assert subscription.drain() == []

    def test_close_wakes_blocked_reader(self) -> None:
        """Test that close() ends iteration in another thread."""
        bus = EventBus()
        subscription = bus.subscribe()
        received: list[QueueEvent] = []

        reader = threading.Thread(target=lambda: received.extend(subscription))
        reader.start()
        bus.publish(event("one"))
        subscription.close()
        reader.join(timeout=5)

        assert not reader.is_alive()
        assert [e.job_id for e in received] in (["one"], [])

    def test_close_with_full_buffer(self) -> None:
        """Test closing a subscription whose buffer is full."""
        bus = EventBus()
        subscription = bus.subscribe(maxsize=1)
        bus.publish(event())
        subscription.close()
        assert subscription.get(timeout=0.01) is None

    def test_context_manager(self) -> None:
        """Test that leaving the block unsubscribes."""
        bus = EventBus()
        with bus.subscribe():
            assert bus.subscriber_count == 1
        assert bus.subscriber_count == 0
