"""
In-memory event queue.

Unbounded and process-local: whatever is still queued when the process
dies is lost.
"""

import threading
from collections import deque
from typing import Deque, List

import structlog

from ..models.event import EventRecord

logger = structlog.get_logger(__name__)


class EventQueue:
    """
    Ordered buffer of event records awaiting a flush.

    push() is O(1) and never raises, so it is safe to call from the
    request path. take() removes a prefix under a lock, so two removals
    can never hand out overlapping records.
    """

    def __init__(self) -> None:
        self._items: Deque[EventRecord] = deque()
        self._lock = threading.Lock()
        self.total_pushed = 0

    def push(self, event: EventRecord) -> None:
        """Append an event to the tail of the queue."""
        try:
            self._items.append(event)
            self.total_pushed += 1
        except Exception as e:
            logger.error("Failed to enqueue event", error=str(e))

    def take(self, max_count: int) -> List[EventRecord]:
        """
        Remove and return up to max_count events from the head.

        Events are returned oldest first. Returns an empty list when the
        queue is empty or max_count < 1.
        """
        with self._lock:
            count = min(max_count, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    def snapshot(self) -> List[EventRecord]:
        """Copy of the queued events without removing them."""
        with self._lock:
            return list(self._items)

    def clear(self) -> int:
        """Drop all queued events, returning how many were discarded."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
            return count

    def __len__(self) -> int:
        return len(self._items)
