from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from candle_extractor.core.errors import WindowPlanningError
from candle_extractor.pipeline.windows import MAX_RECORDS_PER_REQUEST, TimeWindow, plan_windows

UTC = timezone.utc


def _assert_plan_invariants(windows: list[TimeWindow], start: datetime, end: datetime, granularity: int) -> None:
    span = timedelta(seconds=granularity * MAX_RECORDS_PER_REQUEST)
    assert windows[0].start == start
    assert windows[-1].end == end
    for current, following in zip(windows, windows[1:]):
        assert current.end == following.start
    for window in windows[:-1]:
        assert window.duration == span
    assert timedelta(0) < windows[-1].duration <= span


def test_plan_windows_should_return_single_window_when_range_fits_cap() -> None:
    start = datetime(2021, 1, 1, tzinfo=UTC)
    end = datetime(2021, 1, 5, tzinfo=UTC)
    windows = plan_windows(start, end, 86400)
    assert windows == [TimeWindow(start, end)]


@pytest.mark.parametrize(
    ("granularity", "range_seconds"),
    [
        (60, 60 * 200 * 3 + 17),
        (300, 300 * 1000),
        (3600, 3600 * 199),
        (86400, 86400 * 365 * 2),
        (1, 1),
    ],
)
def test_plan_windows_should_be_contiguous_and_cover_range(granularity: int, range_seconds: int) -> None:
    start = datetime(2020, 6, 1, 12, 30, tzinfo=UTC)
    end = start + timedelta(seconds=range_seconds)
    windows = plan_windows(start, end, granularity)
    _assert_plan_invariants(windows, start, end, granularity)


def test_plan_windows_exact_multiple_should_not_emit_empty_trailing_window() -> None:
    start = datetime(2021, 1, 1, tzinfo=UTC)
    end = start + timedelta(minutes=200 * 2)
    windows = plan_windows(start, end, 60)
    assert len(windows) == 2
    assert windows[-1] == TimeWindow(start + timedelta(minutes=200), end)


def test_plan_windows_should_honor_custom_record_cap() -> None:
    start = datetime(2021, 1, 1, tzinfo=UTC)
    windows = plan_windows(start, start + timedelta(hours=25), 3600, max_records=10)
    assert [w.duration for w in windows] == [timedelta(hours=10), timedelta(hours=10), timedelta(hours=5)]


@pytest.mark.parametrize("granularity", [0, -60])
def test_plan_windows_should_reject_non_positive_granularity(granularity: int) -> None:
    start = datetime(2021, 1, 1, tzinfo=UTC)
    with pytest.raises(WindowPlanningError):
        plan_windows(start, start + timedelta(days=1), granularity)


def test_plan_windows_should_reject_empty_or_inverted_range() -> None:
    start = datetime(2021, 1, 1, tzinfo=UTC)
    with pytest.raises(WindowPlanningError):
        plan_windows(start, start, 60)
    with pytest.raises(WindowPlanningError):
        plan_windows(start, start - timedelta(seconds=1), 60)


def test_plan_windows_should_reject_naive_datetimes() -> None:
    with pytest.raises(WindowPlanningError):
        plan_windows(datetime(2021, 1, 1), datetime(2021, 1, 2), 60)
