from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Sequence

import pytest

from candle_extractor.config.models import ExtractionConfig
from candle_extractor.data_feed.candles import Candlestick, RawRate
from candle_extractor.pipeline.windows import TimeWindow

UTC = timezone.utc


def make_rate(when: datetime, price: float = 100.0, volume: float = 10.0) -> RawRate:
    return RawRate(time=when, low=price - 1, high=price + 1, open=price, close=price + 0.5, volume=volume)


def daily_rates(start: datetime, days: int) -> list[RawRate]:
    return [make_rate(start + timedelta(days=offset), price=100.0 + offset) for offset in range(days)]


class FakeExchangeClient:
    """Returns scripted rates per window index; exceptions in the script are raised."""

    def __init__(self, script: Dict[int, Sequence[RawRate] | Exception] | None = None) -> None:
        self.script = script or {}
        self.calls: List[tuple[str, TimeWindow, int]] = []
        self._lock = threading.Lock()

    def get_historic_rates(self, product: str, window: TimeWindow, granularity: int) -> Sequence[RawRate]:
        with self._lock:
            index = len(self.calls)
            self.calls.append((product, window, granularity))
        outcome = self.script.get(index, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class WindowRatesClient:
    """Produces one rate per granularity bucket inside each requested window."""

    def __init__(self) -> None:
        self.calls: List[TimeWindow] = []

    def get_historic_rates(self, product: str, window: TimeWindow, granularity: int) -> Sequence[RawRate]:
        self.calls.append(window)
        rates = []
        cursor = window.start
        while cursor < window.end:
            rates.append(make_rate(cursor))
            cursor += timedelta(seconds=granularity)
        return rates


class RecordingReceiver:
    """Receiver double that logs every call in a shared journal."""

    def __init__(self, name: str, journal: list | None = None, fail_on: Callable[[Candlestick], bool] | None = None) -> None:
        self.name = name
        self.journal = journal if journal is not None else []
        self.collected: List[Candlestick] = []
        self.close_calls = 0
        self._fail_on = fail_on

    def collect(self, candle: Candlestick) -> None:
        self.journal.append((self.name, "collect", candle.timestamp))
        if self._fail_on is not None and self._fail_on(candle):
            raise IOError(f"{self.name} cannot store {candle.datetime}")
        self.collected.append(candle)

    def close(self) -> None:
        self.journal.append((self.name, "close", None))
        self.close_calls += 1


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def jan_first() -> datetime:
    return datetime(2021, 1, 1, tzinfo=UTC)


@pytest.fixture
def job_factory(jan_first: datetime) -> Callable[..., ExtractionConfig]:
    def _factory(**overrides: object) -> ExtractionConfig:
        payload: Dict[str, object] = {
            "product": "BTC-USD",
            "start": jan_first,
            "end": jan_first + timedelta(days=4),
            "granularity": 86400,
            "buffer_size": 4,
            "min_request_interval_sec": 0.0,
        }
        payload.update(overrides)
        return ExtractionConfig(**payload)  # type: ignore[arg-type]

    return _factory


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def candle_factory() -> Callable[..., Candlestick]:
    def _factory(timestamp: int = 1_609_459_200, **overrides: object) -> Candlestick:
        payload: Dict[str, object] = {
            "timestamp": timestamp,
            "datetime": datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "granularity": 86400,
            "low": 99.0,
            "high": 101.0,
            "open": 100.0,
            "close": 100.5,
            "volume": 10.0,
        }
        payload.update(overrides)
        return Candlestick(**payload)  # type: ignore[arg-type]

    return _factory
