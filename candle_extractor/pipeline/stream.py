"""Bounded single-producer/single-consumer stream with an explicit close signal."""
from __future__ import annotations

import queue
import threading
from typing import Generic, Iterator, TypeVar

from candle_extractor.core.errors import StreamClosedError

T = TypeVar("T")

_CLOSED = object()


class Stream(Generic[T]):
    """Thread-safe bounded FIFO that the producer closes exactly once.

    ``put`` blocks while the buffer is full. ``close`` enqueues an end marker
    behind any pending items, so the consumer always sees every item pushed
    before the close. Iteration stops at the marker and cannot be restarted.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("Stream capacity must be positive")
        self.capacity = capacity
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=capacity)
        self._lock = threading.Lock()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: T) -> None:
        if self._closed:
            raise StreamClosedError("Cannot send on a closed stream")
        self._queue.put(item)

    def close(self) -> None:
        """Mark the end of the stream. Repeated calls are no-ops."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_CLOSED)

    def get(self, timeout: float | None = None) -> T:
        """Return the next item; raise :class:`StopIteration` once closed and drained."""

        if self._drained:
            raise StopIteration
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._drained = True
            raise StopIteration
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except StopIteration:
                return
