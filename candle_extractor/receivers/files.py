"""File-backed receivers: CSV, newline-delimited JSON and a JSON array.

Each receiver truncates its target on construction and writes under a lock,
so it is safe under parallel fan-out. ``close`` is idempotent.
"""
from __future__ import annotations

import csv
import json
import threading
from pathlib import Path
from typing import IO

from candle_extractor.core.errors import ReceiverError
from candle_extractor.data_feed.candles import Candlestick

CSV_HEADER = ("Time", "Granularity", "Low", "High", "Open", "Close", "Volume")


class _FileReceiver:
    """Shared open/close/lock handling for the file receivers."""

    name = "file"

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._closed = False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle: IO[str] = self.path.open("w", newline="", encoding="utf-8")
        except OSError as exc:
            raise ReceiverError(self.name, f"cannot open {self.path}: {exc}") from exc
        self._on_open()

    def _on_open(self) -> None:
        """Hook for writing a header right after the file is created."""

    def _on_close(self) -> None:
        """Hook for writing a trailer before the file is closed."""

    def _write(self, candle: Candlestick) -> None:
        raise NotImplementedError

    def collect(self, candle: Candlestick) -> None:
        with self._lock:
            if self._closed:
                raise ReceiverError(self.name, f"{self.path} is already closed")
            try:
                self._write(candle)
            except (OSError, ValueError) as exc:
                raise ReceiverError(self.name, f"write to {self.path} failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._on_close()
            finally:
                self._handle.close()


class CsvReceiver(_FileReceiver):
    """``Time,Granularity,Low,High,Open,Close,Volume`` rows, flushed per record."""

    name = "csv"

    def _on_open(self) -> None:
        self._writer = csv.writer(self._handle)
        self._writer.writerow(CSV_HEADER)
        self._handle.flush()

    def _write(self, candle: Candlestick) -> None:
        self._writer.writerow(
            [
                candle.datetime,
                candle.granularity,
                candle.low,
                candle.high,
                candle.open,
                candle.close,
                candle.volume,
            ]
        )
        self._handle.flush()


class NdjsonReceiver(_FileReceiver):
    """One JSON object per line."""

    name = "ndjson"

    def _write(self, candle: Candlestick) -> None:
        self._handle.write(json.dumps(candle.to_dict()) + "\n")


class JsonArrayReceiver(_FileReceiver):
    """A single bracket-wrapped JSON array, completed on ``close``."""

    name = "json"

    def _on_open(self) -> None:
        self._count = 0
        self._handle.write("[\n")

    def _write(self, candle: Candlestick) -> None:
        if self._count:
            self._handle.write(",\n")
        self._handle.write(json.dumps(candle.to_dict()))
        self._count += 1

    def _on_close(self) -> None:
        self._handle.write("\n]\n" if self._count else "]\n")
