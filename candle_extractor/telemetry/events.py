"""Structured telemetry models for an extraction run."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from candle_extractor.pipeline.collector import CollectorStats
from candle_extractor.pipeline.extractor import ExtractorStats


@dataclass(slots=True)
class TelemetryEvent:
    """Generic event appended to ``logs/events_YYYYMMDD.jsonl``."""

    timestamp: datetime
    event_type: str
    level: str = "INFO"
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(slots=True)
class ExtractionStats:
    """Summary of one run, persisted as ``reports/extraction_<product>_<ts>.json``."""

    product: str
    granularity: int
    start_time: datetime
    end_time: datetime
    windows_planned: int = 0
    windows_requested: int = 0
    windows_failed: int = 0
    records_emitted: int = 0
    records_collected: int = 0
    receiver_errors: int = 0
    cancelled: bool = False
    receivers: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def duration_sec(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def complete(self) -> bool:
        """True when every planned window was requested and succeeded and no receiver failed."""

        return (
            not self.cancelled
            and self.windows_requested == self.windows_planned
            and self.windows_failed == 0
            and self.receiver_errors == 0
        )

    @classmethod
    def from_run(
        cls,
        *,
        product: str,
        granularity: int,
        start_time: datetime,
        end_time: datetime,
        extractor_stats: ExtractorStats,
        collector_stats: CollectorStats,
        receivers: list[str] | None = None,
        finished_at: datetime | None = None,
    ) -> "ExtractionStats":
        return cls(
            product=product,
            granularity=granularity,
            start_time=start_time,
            end_time=end_time,
            windows_planned=extractor_stats.windows_planned,
            windows_requested=extractor_stats.windows_requested,
            windows_failed=extractor_stats.windows_failed,
            records_emitted=extractor_stats.records_emitted,
            records_collected=collector_stats.records_collected,
            receiver_errors=collector_stats.receiver_errors,
            cancelled=extractor_stats.cancelled,
            receivers=list(receivers or []),
            started_at=extractor_stats.started_at,
            finished_at=finished_at or extractor_stats.finished_at or datetime.now(tz=timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key in ("start_time", "end_time", "started_at", "finished_at"):
            value = getattr(self, key)
            payload[key] = value.isoformat() if value else None
        payload["duration_sec"] = self.duration_sec
        payload["complete"] = self.complete
        return payload


__all__ = ["ExtractionStats", "TelemetryEvent"]
