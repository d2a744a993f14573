"""Extractor: windowed, rate-limited pull of historic rates into streams.

The extractor owns one production thread per run. For every planned window it
asks the :class:`ExchangeClient` for rates, converts them to candlesticks and
pushes them onto the record stream; a failed window is pushed onto the error
stream instead and the run moves on. Requests are paced by
:class:`~candle_extractor.pipeline.rate_limit.RateLimiter`.

Only the production thread closes the two streams, after its last send, so
``stop()`` never races a send onto a closed stream.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol, Sequence

from candle_extractor.config.models import ExtractionConfig
from candle_extractor.core.enums import RunState
from candle_extractor.core.errors import ExtractorStateError, WindowRequestError
from candle_extractor.core.time_utils import format_utc, now_utc
from candle_extractor.data_feed.candles import Candlestick, RawRate, candles_from_rates

from .rate_limit import RateLimiter
from .stream import Stream
from .windows import TimeWindow, plan_windows

LOGGER = logging.getLogger(__name__)


class ExchangeClient(Protocol):
    """Anything that can return the historic rates of one window."""

    def get_historic_rates(
        self,
        product: str,
        window: TimeWindow,
        granularity: int,
    ) -> Sequence[RawRate]: ...


@dataclass(slots=True)
class ExtractorStats:
    """Counters updated by the production thread."""

    windows_planned: int = 0
    windows_requested: int = 0
    windows_failed: int = 0
    records_emitted: int = 0
    cancelled: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None


class Extractor:
    """Produce a record stream and an error stream for one extraction job.

    Parameters
    ----------
    client:
        Exchange capability used for every window request.
    rate_limiter:
        Optional pre-built limiter (tests inject fake clocks). By default one is
        built from ``job.min_request_interval_sec`` at :meth:`start` and sleeps
        on the cancel event so :meth:`stop` wakes it.
    """

    def __init__(
        self,
        client: ExchangeClient,
        *,
        rate_limiter: RateLimiter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._rate_limiter = rate_limiter
        self._logger = logger or LOGGER
        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None
        self._records: Stream[Candlestick] | None = None
        self._errors: Stream[Exception] | None = None
        self._job: ExtractionConfig | None = None
        self.windows: List[TimeWindow] = []
        self.stats = ExtractorStats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    @property
    def job(self) -> ExtractionConfig | None:
        return self._job

    def start(self, job: ExtractionConfig) -> None:
        """Plan the windows and launch the production thread.

        Raises :class:`ExtractorStateError` unless the extractor is idle; a
        second call never spawns a second thread.
        """

        with self._state_lock:
            if self._state is RunState.RUNNING:
                raise ExtractorStateError("Extractor already started")
            if self._state is RunState.STOPPED:
                raise ExtractorStateError("Extractor already started and stopped; runs are not restartable")
            windows = plan_windows(job.start, job.end, job.granularity)
            self._job = job
            self.windows = windows
            self.stats.windows_planned = len(windows)
            self.stats.started_at = now_utc()
            self._records = Stream(job.buffer_size)
            self._errors = Stream(job.buffer_size)
            if self._rate_limiter is None:
                self._rate_limiter = RateLimiter(job.min_request_interval_sec, sleep=self._cancel.wait)
            self._state = RunState.RUNNING
            self._thread = threading.Thread(
                target=self._produce,
                args=(job, windows),
                name=f"extractor-{job.product}",
                daemon=True,
            )
            self._thread.start()
        self._logger.info(
            "Extraction started",
            extra={"product": job.product, "granularity": job.granularity, "windows": len(windows)},
        )

    def stop(self) -> None:
        """Request cooperative cancellation; the in-flight request still completes."""

        with self._state_lock:
            if self._state is RunState.STOPPED:
                return
            self._state = RunState.STOPPED
            self._cancel.set()
        self._logger.info("Extraction stop requested")

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the production thread; return ``True`` once it has finished."""

        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------
    def records(self) -> Stream[Candlestick]:
        if self._records is None:
            raise ExtractorStateError("Extractor has not been started")
        return self._records

    def errors(self) -> Stream[Exception]:
        if self._errors is None:
            raise ExtractorStateError("Extractor has not been started")
        return self._errors

    # ------------------------------------------------------------------
    # Production thread
    # ------------------------------------------------------------------
    def _produce(self, job: ExtractionConfig, windows: Sequence[TimeWindow]) -> None:
        assert self._records is not None and self._errors is not None
        assert self._rate_limiter is not None
        try:
            for index, window in enumerate(windows):
                if self._cancel.is_set():
                    self.stats.cancelled = True
                    self._logger.info("Extraction cancelled", extra={"remaining_windows": len(windows) - index})
                    break
                started = self._rate_limiter.now()
                self._extract_window(job, window)
                if index < len(windows) - 1:
                    self._rate_limiter.wait(started, job.min_request_interval_sec)
        finally:
            self._records.close()
            self._errors.close()
            with self._state_lock:
                self._state = RunState.STOPPED
            self.stats.finished_at = now_utc()
            self._logger.info(
                "Extraction finished",
                extra={
                    "product": job.product,
                    "windows_requested": self.stats.windows_requested,
                    "windows_failed": self.stats.windows_failed,
                    "records_emitted": self.stats.records_emitted,
                },
            )

    def _extract_window(self, job: ExtractionConfig, window: TimeWindow) -> None:
        assert self._records is not None and self._errors is not None
        self.stats.windows_requested += 1
        self._logger.debug(
            "=> REQ [%s:%s] %s=%s",
            job.product,
            job.granularity,
            window,
            window.duration,
            extra={"window_start": format_utc(window.start), "window_end": format_utc(window.end)},
        )
        try:
            rates = self._client.get_historic_rates(job.product, window, job.granularity)
            candles = candles_from_rates(job.granularity, rates)
        except Exception as exc:
            self.stats.windows_failed += 1
            self._logger.warning("Window request failed %s: %s", window, exc)
            self._errors.put(WindowRequestError(job.product, window, exc))
            return
        self._logger.debug("<= RES %s results", len(candles), extra={"records": len(candles)})
        for candle in candles:
            self._records.put(candle)
            self.stats.records_emitted += 1


__all__ = ["ExchangeClient", "Extractor", "ExtractorStats"]
