"""Collector: drain an extractor's streams and fan records out to receivers."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, List, Protocol

from candle_extractor.core.errors import CollectorError, ReceiverError
from candle_extractor.data_feed.candles import Candlestick
from candle_extractor.receivers.base import Receiver, receiver_name

from .stream import Stream

LOGGER = logging.getLogger(__name__)

ErrorHandler = Callable[[Exception], None]


class Collectable(Protocol):
    """Source of a record stream and an error stream (usually an Extractor)."""

    def records(self) -> Stream[Candlestick]: ...

    def errors(self) -> Stream[Exception]: ...

    def stop(self) -> None: ...


@dataclass(slots=True)
class CollectorStats:
    records_collected: int = 0
    extraction_errors: int = 0
    receiver_errors: int = 0


class Collector:
    """Fan each record out to every receiver, in extraction order.

    Two consumer threads run during :meth:`collect`: one drains records, the
    other drains extractor errors. Each record visits all receivers before the
    next one is dequeued, so every receiver sees records in extraction order.
    With ``parallel_fanout`` the receivers of one record run concurrently but
    the collector still waits for all of them before moving on.

    Every error (failed window, failing receiver) goes to ``error_handler``,
    serialized by a lock; the default logs it and carries on.
    """

    def __init__(
        self,
        extractor: Collectable,
        receivers: Iterable[Receiver] | None = None,
        *,
        error_handler: ErrorHandler | None = None,
        parallel_fanout: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.extractor = extractor
        self.receivers: List[Receiver] = list(receivers or [])
        self._logger = logger or LOGGER
        self.error_handler: ErrorHandler = error_handler or self._log_error
        self.parallel_fanout = parallel_fanout
        self.stats = CollectorStats()
        self._running = False
        self._closed = False
        self._running_lock = threading.Lock()
        self._handler_lock = threading.Lock()
        self._failures: List[Exception] = []
        self._pool: ThreadPoolExecutor | None = None

    def add_receiver(self, receiver: Receiver) -> None:
        """Register ``receiver``; call before :meth:`collect`."""

        self.receivers.append(receiver)

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------
    def collect(self) -> None:
        """Block until both extractor streams are exhausted, then close receivers.

        Raises :class:`CollectorError` when no receivers are registered or a
        collection is already in progress. An unexpected failure inside a drain
        thread stops the extractor and is re-raised here after cleanup.
        """

        with self._running_lock:
            if self._running:
                raise CollectorError("Collection already started")
            if self._closed:
                raise CollectorError("Collector already closed")
            if not self.receivers:
                raise CollectorError("No receivers set for the collector when collect was called")
            self._running = True
        self._failures = []
        records = self.extractor.records()
        errors = self.extractor.errors()
        if self.parallel_fanout and len(self.receivers) > 1:
            self._pool = ThreadPoolExecutor(max_workers=len(self.receivers), thread_name_prefix="fanout")
        drains = [
            threading.Thread(target=self._drain, args=(records, self._fan_out), name="collector-records", daemon=True),
            threading.Thread(target=self._drain, args=(errors, self._handle_extraction_error), name="collector-errors", daemon=True),
        ]
        try:
            for thread in drains:
                thread.start()
            for thread in drains:
                thread.join()
        finally:
            if self._pool is not None:
                self._pool.shutdown(wait=True)
                self._pool = None
            with self._running_lock:
                self._closed = True
            self._close_each()
            with self._running_lock:
                self._running = False
        if self._failures:
            raise self._failures[0]

    def close(self) -> None:
        """Close every receiver unless :meth:`collect` already did.

        Raises :class:`CollectorError` while a collection is in progress.
        """

        with self._running_lock:
            if self._running:
                raise CollectorError("Cannot close while collecting")
            if self._closed:
                return
            self._closed = True
        self._close_each()

    def _close_each(self) -> None:
        for receiver in list(self.receivers):
            try:
                receiver.close()
            except Exception as exc:
                self._report(_as_receiver_error(receiver, exc))

    # ------------------------------------------------------------------
    # Drain threads
    # ------------------------------------------------------------------
    def _drain(self, stream: Stream, handle: Callable) -> None:
        try:
            for item in stream:
                handle(item)
        except Exception as exc:
            self._failures.append(exc)
            self._logger.exception("Collector drain failed; stopping extraction")
            self.extractor.stop()
            # Keep consuming so the producer can finish and close the stream.
            for _ in stream:
                pass

    def _fan_out(self, candle: Candlestick) -> None:
        self.stats.records_collected += 1
        if self._pool is not None:
            futures = [(receiver, self._pool.submit(receiver.collect, candle)) for receiver in self.receivers]
            for receiver, future in futures:
                exc = future.exception()
                if exc is not None:
                    self._report(_as_receiver_error(receiver, exc))
            return
        for receiver in self.receivers:
            try:
                receiver.collect(candle)
            except Exception as exc:
                self._report(_as_receiver_error(receiver, exc))

    def _handle_extraction_error(self, error: Exception) -> None:
        self.stats.extraction_errors += 1
        self._call_handler(error)

    def _report(self, error: ReceiverError) -> None:
        self.stats.receiver_errors += 1
        self._call_handler(error)

    def _call_handler(self, error: Exception) -> None:
        with self._handler_lock:
            self.error_handler(error)

    def _log_error(self, error: Exception) -> None:
        self._logger.error("Extraction error: %s", error)


def _as_receiver_error(receiver: Receiver, exc: BaseException) -> ReceiverError:
    if isinstance(exc, ReceiverError):
        return exc
    error = ReceiverError(receiver_name(receiver), str(exc) or exc.__class__.__name__)
    error.__cause__ = exc
    return error


__all__ = ["Collectable", "Collector", "CollectorStats", "ErrorHandler"]
