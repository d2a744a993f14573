"""Helpers for persisting telemetry artifacts (events, run reports)."""
from __future__ import annotations

import json
import re
from pathlib import Path

from candle_extractor.core.errors import TelemetryError
from candle_extractor.telemetry.events import ExtractionStats, TelemetryEvent

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class TelemetryStorage:
    """Write structured telemetry objects to disk.

    The CLI creates one storage per process; the run report is written once
    the collector has closed every receiver.
    """

    def __init__(
        self,
        *,
        logs_dir: Path,
        reports_dir: Path,
    ) -> None:
        self._logs_dir = logs_dir
        self._reports_dir = reports_dir
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        self._reports_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # JSON event logs
    # ------------------------------------------------------------------
    def append_event(self, event: TelemetryEvent) -> Path:
        """Append ``event`` as JSON to ``logs/events_YYYYMMDD.jsonl``."""

        date_str = event.timestamp.strftime("%Y%m%d")
        path = self._logs_dir / f"events_{date_str}.jsonl"
        try:
            with path.open("a", encoding="utf-8") as handle:
                json.dump(event.to_dict(), handle, ensure_ascii=False)
                handle.write("\n")
        except OSError as exc:  # pragma: no cover - filesystem errors are rare
            raise TelemetryError(f"Failed to write telemetry event: {exc}") from exc
        return path

    # ------------------------------------------------------------------
    # Run report JSON
    # ------------------------------------------------------------------
    def write_run_report(self, stats: ExtractionStats) -> Path:
        """Persist ``stats`` to ``reports/extraction_<product>_<YYYYmmddTHHMMSS>.json``."""

        finished = stats.finished_at or stats.end_time
        product = _UNSAFE_CHARS.sub("_", stats.product)
        path = self._reports_dir / f"extraction_{product}_{finished.strftime('%Y%m%dT%H%M%S')}.json"
        try:
            with path.open("w", encoding="utf-8") as handle:
                json.dump(stats.to_dict(), handle, indent=2, ensure_ascii=False)
        except OSError as exc:  # pragma: no cover
            raise TelemetryError(f"Failed to write run report: {exc}") from exc
        return path


def default_storage(base_dir: Path) -> TelemetryStorage:
    """Factory returning storage rooted under ``base_dir``."""

    return TelemetryStorage(logs_dir=base_dir / "logs", reports_dir=base_dir / "reports")


__all__ = ["TelemetryStorage", "default_storage"]
