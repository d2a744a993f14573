"""Enumerations shared across the extractor subsystems."""
from __future__ import annotations

from enum import Enum


class RunState(str, Enum):
    """Lifecycle of a single extraction run.

    ``IDLE -> RUNNING -> STOPPED``; ``STOPPED`` is terminal and a new
    :class:`~candle_extractor.pipeline.extractor.Extractor` is needed for
    another run.
    """

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Granularity(int, Enum):
    """Bucket widths (seconds) accepted by the Coinbase Exchange candles API."""

    MIN_1 = 60
    MIN_5 = 300
    MIN_15 = 900
    HOUR_1 = 3600
    HOUR_6 = 21600
    DAY_1 = 86400

    @classmethod
    def is_supported(cls, seconds: int) -> bool:
        return any(member.value == seconds for member in cls)
