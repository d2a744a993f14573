"""Split a global time range into windows bounded by the per-request record cap."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from candle_extractor.core.errors import WindowPlanningError
from candle_extractor.core.time_utils import format_utc

MAX_RECORDS_PER_REQUEST = 200


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Half-open request range ``[start, end)``; the last window of a plan is closed."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def __str__(self) -> str:
        return f"({format_utc(self.start)} - {format_utc(self.end)})"


def plan_windows(
    start: datetime,
    end: datetime,
    granularity: int,
    max_records: int = MAX_RECORDS_PER_REQUEST,
) -> List[TimeWindow]:
    """Return contiguous windows covering exactly ``[start, end]``.

    Every window spans ``granularity * max_records`` seconds except the final
    one, which is trimmed to ``end``.
    """

    if granularity <= 0:
        raise WindowPlanningError(f"Granularity must be positive, got {granularity}")
    if max_records <= 0:
        raise WindowPlanningError(f"max_records must be positive, got {max_records}")
    if start.tzinfo is None or end.tzinfo is None:
        raise WindowPlanningError("Window bounds must be timezone-aware")
    if end <= start:
        raise WindowPlanningError(f"End {format_utc(end)} must be after start {format_utc(start)}")

    span = timedelta(seconds=granularity * max_records)
    windows: List[TimeWindow] = []
    cursor = start
    while end - (cursor + span) > timedelta(0):
        windows.append(TimeWindow(cursor, cursor + span))
        cursor += span
    windows.append(TimeWindow(cursor, end))
    return windows
