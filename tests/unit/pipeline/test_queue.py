"""
Tests for the in-memory event queue.
"""

import threading
from typing import Callable

from webpulse.core.queue import EventQueue
from webpulse.models.event import EventRecord


class TestEventQueue:
    """Test push/take ordering and bounds."""

    def test_take_returns_oldest_first(self, make_event: Callable[..., EventRecord]) -> None:
        """Test events come out in push order."""
        queue = EventQueue()
        events = [make_event(status=200 + i) for i in range(5)]
        for event in events:
            queue.push(event)

        assert queue.take(3) == events[:3]
        assert queue.take(10) == events[3:]
        assert len(queue) == 0

    def test_take_from_empty_queue(self) -> None:
        """Test taking from an empty queue returns an empty list."""
        assert EventQueue().take(10) == []

    def test_take_non_positive_count(self, make_event: Callable[..., EventRecord]) -> None:
        """Test max_count below one removes nothing."""
        queue = EventQueue()
        queue.push(make_event())
        assert queue.take(0) == []
        assert queue.take(-5) == []
        assert len(queue) == 1

    def test_total_pushed_counter(self, make_event: Callable[..., EventRecord]) -> None:
        """Test total_pushed survives takes."""
        queue = EventQueue()
        for _ in range(4):
            queue.push(make_event())
        queue.take(4)
        assert queue.total_pushed == 4

    def test_snapshot_and_clear(self, make_event: Callable[..., EventRecord]) -> None:
        """Test snapshot copies without removing and clear reports the drop."""
        queue = EventQueue()
        queue.push(make_event())
        queue.push(make_event())

        assert len(queue.snapshot()) == 2
        assert len(queue) == 2
        assert queue.clear() == 2
        assert len(queue) == 0

    def test_concurrent_takes_never_overlap(self, make_event: Callable[..., EventRecord]) -> None:
        """Test takes from several threads hand out each event once."""
        queue = EventQueue()
        events = [make_event(latency_ms=i) for i in range(2000)]
        for event in events:
            queue.push(event)

        taken = []
        lock = threading.Lock()

        def worker() -> None:
            while True:
                batch = queue.take(7)
                if not batch:
                    return
                with lock:
                    taken.extend(batch)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(taken) == 2000
        assert len({id(e) for e in taken}) == 2000
