from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from candle_extractor.core.enums import RunState
from candle_extractor.core.errors import ExtractorStateError, WindowPlanningError, WindowRequestError
from candle_extractor.data_feed.candles import RawRate
from candle_extractor.pipeline.extractor import Extractor
from candle_extractor.pipeline.rate_limit import RateLimiter

from conftest import FakeExchangeClient, WindowRatesClient, daily_rates, make_rate


def _drain(extractor: Extractor) -> tuple[list, list]:
    errors: list = []
    consumer = threading.Thread(target=lambda: errors.extend(extractor.errors()))
    consumer.start()
    records = list(extractor.records())
    consumer.join(timeout=5)
    assert extractor.join(timeout=5)
    return records, errors


def test_extractor_should_stream_records_in_window_order(job_factory, jan_first) -> None:
    # 600 hourly buckets -> three windows of 200 hours
    job = job_factory(granularity=3600, end=jan_first + timedelta(hours=600))
    client = WindowRatesClient()
    extractor = Extractor(client)
    extractor.start(job)
    records, errors = _drain(extractor)

    assert errors == []
    assert len(client.calls) == 3
    assert len(records) == 600
    timestamps = [record.timestamp for record in records]
    assert timestamps == sorted(timestamps)
    assert all(record.granularity == 3600 for record in records)
    assert extractor.state is RunState.STOPPED
    assert extractor.stats.records_emitted == 600
    assert extractor.stats.windows_planned == 3


def test_extractor_failed_window_should_not_drop_or_reorder_other_windows(job_factory, jan_first) -> None:
    job = job_factory(granularity=3600, end=jan_first + timedelta(hours=600))
    first = [make_rate(jan_first + timedelta(hours=h)) for h in range(3)]
    third = [make_rate(jan_first + timedelta(hours=400 + h)) for h in range(2)]
    failure = RuntimeError("429 Too Many Requests")
    client = FakeExchangeClient({0: first, 1: failure, 2: third})
    extractor = Extractor(client)
    extractor.start(job)
    records, errors = _drain(extractor)

    assert [r.timestamp for r in records] == [int(rate.time.timestamp()) for rate in first + third]
    assert len(errors) == 1
    assert isinstance(errors[0], WindowRequestError)
    assert errors[0].cause is failure
    assert errors[0].window == extractor.windows[1]
    assert errors[0].product == "BTC-USD"
    assert extractor.stats.windows_failed == 1
    assert extractor.stats.windows_requested == 3


def test_extractor_should_pass_product_window_and_granularity_to_client(job_factory) -> None:
    job = job_factory(product="ETH-USD")
    client = FakeExchangeClient({0: []})
    extractor = Extractor(client)
    extractor.start(job)
    _drain(extractor)
    assert client.calls == [("ETH-USD", extractor.windows[0], 86400)]


def test_extractor_start_twice_should_fail_without_second_thread(job_factory) -> None:
    release = threading.Event()

    class BlockingClient:
        def __init__(self) -> None:
            self.calls = 0

        def get_historic_rates(self, product, window, granularity):
            self.calls += 1
            release.wait(5)
            return []

    client = BlockingClient()
    extractor = Extractor(client)
    extractor.start(job_factory())
    threads_before = threading.active_count()
    with pytest.raises(ExtractorStateError, match="already started"):
        extractor.start(job_factory())
    assert threading.active_count() == threads_before
    release.set()
    _drain(extractor)
    assert client.calls == 1


def test_extractor_should_not_restart_after_stop(job_factory) -> None:
    extractor = Extractor(FakeExchangeClient())
    extractor.start(job_factory())
    _drain(extractor)
    with pytest.raises(ExtractorStateError):
        extractor.start(job_factory())


def test_extractor_streams_require_start() -> None:
    extractor = Extractor(FakeExchangeClient())
    assert extractor.state is RunState.IDLE
    with pytest.raises(ExtractorStateError):
        extractor.records()
    with pytest.raises(ExtractorStateError):
        extractor.errors()


def test_extractor_stop_should_halt_after_in_flight_window(job_factory, jan_first) -> None:
    job = job_factory(granularity=60, end=jan_first + timedelta(minutes=200 * 5))
    in_flight = threading.Event()
    proceed = threading.Event()

    class SlowClient:
        def __init__(self) -> None:
            self.calls = 0

        def get_historic_rates(self, product, window, granularity):
            self.calls += 1
            in_flight.set()
            proceed.wait(5)
            return [make_rate(window.start)]

    client = SlowClient()
    extractor = Extractor(client)
    extractor.start(job)
    assert in_flight.wait(5)
    extractor.stop()
    assert extractor.state is RunState.STOPPED
    proceed.set()
    records, errors = _drain(extractor)

    assert client.calls == 1
    assert len(records) == 1
    assert errors == []


def test_extractor_stop_should_wake_pacing_sleep(job_factory, jan_first) -> None:
    job = job_factory(granularity=60, end=jan_first + timedelta(minutes=400), min_request_interval_sec=30.0)
    client = FakeExchangeClient({0: [make_rate(jan_first)]})
    extractor = Extractor(client)
    extractor.start(job)
    first = next(iter(extractor.records()))
    extractor.stop()
    assert extractor.join(timeout=5)
    assert first.timestamp == int(jan_first.timestamp())
    assert len(client.calls) == 1


def test_extractor_should_pace_between_windows_from_request_start(job_factory, jan_first, fake_clock) -> None:
    job = job_factory(granularity=60, end=jan_first + timedelta(minutes=600), min_request_interval_sec=0.4)

    class TimedClient:
        def get_historic_rates(self, product, window, granularity):
            fake_clock.advance(0.15)
            return []

    limiter = RateLimiter(0.4, clock=fake_clock, sleep=fake_clock.sleep)
    extractor = Extractor(TimedClient(), rate_limiter=limiter)
    extractor.start(job)
    _drain(extractor)
    # three windows, pacing only between them
    assert fake_clock.sleeps == [pytest.approx(0.25), pytest.approx(0.25)]


def test_extractor_invalid_job_should_leave_extractor_idle(job_factory, jan_first) -> None:
    extractor = Extractor(FakeExchangeClient())
    job = job_factory().model_copy(update={"granularity": 0})
    with pytest.raises(WindowPlanningError):
        extractor.start(job)
    assert extractor.state is RunState.IDLE


def test_extractor_end_to_end_daily_records(job_factory, jan_first) -> None:
    client = FakeExchangeClient({0: daily_rates(jan_first, 4)})
    extractor = Extractor(client)
    extractor.start(job_factory())
    records, errors = _drain(extractor)
    assert len(extractor.windows) == 1
    assert [r.datetime for r in records] == [
        "2021-01-01T00:00:00Z",
        "2021-01-02T00:00:00Z",
        "2021-01-03T00:00:00Z",
        "2021-01-04T00:00:00Z",
    ]
    assert errors == []


def test_extractor_unconvertible_rates_should_fail_only_that_window(job_factory, jan_first) -> None:
    job = job_factory(granularity=3600, end=jan_first + timedelta(hours=600))
    broken = RawRate(time=None, low=1.0, high=2.0, open=1.5, close=1.6, volume=3.0)  # type: ignore[arg-type]
    third = [make_rate(jan_first + timedelta(hours=400))]
    client = FakeExchangeClient({0: [broken], 1: [], 2: third})
    extractor = Extractor(client)
    extractor.start(job)
    records, errors = _drain(extractor)

    assert len(client.calls) == 3
    assert [r.timestamp for r in records] == [int(third[0].time.timestamp())]
    assert len(errors) == 1
    assert isinstance(errors[0], WindowRequestError)
    assert errors[0].window == extractor.windows[0]
    assert isinstance(errors[0].cause, AttributeError)
    assert extractor.stats.windows_failed == 1
    assert extractor.stats.cancelled is False


def test_extractor_stop_should_mark_stats_cancelled(job_factory, jan_first) -> None:
    job = job_factory(granularity=60, end=jan_first + timedelta(minutes=200 * 5), min_request_interval_sec=30.0)
    client = FakeExchangeClient({0: [make_rate(jan_first)]})
    extractor = Extractor(client)
    extractor.start(job)
    next(iter(extractor.records()))
    extractor.stop()
    assert extractor.join(timeout=5)

    assert extractor.stats.cancelled is True
    assert extractor.stats.windows_planned == 5
    assert extractor.stats.windows_requested == 1
