"""Receiver contract shared by every output sink."""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from candle_extractor.data_feed.candles import Candlestick


@runtime_checkable
class Receiver(Protocol):
    """Consumer of candlesticks.

    ``collect`` persists one record and raises on failure; ``close`` flushes
    and releases resources, must be safe to call more than once and reports
    its own problems by raising or logging.
    """

    def collect(self, candle: Candlestick) -> None: ...

    def close(self) -> None: ...


def receiver_name(receiver: object) -> str:
    """Human-readable identifier used in error messages."""

    name = getattr(receiver, "name", None)
    if isinstance(name, str) and name:
        return name
    return receiver.__class__.__name__
