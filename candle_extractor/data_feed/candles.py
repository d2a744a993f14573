"""Candlestick value objects and conversion from raw exchange rates."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Sequence

from candle_extractor.core.time_utils import ensure_utc, format_utc, from_unix_seconds, to_unix_seconds


@dataclass(frozen=True, slots=True)
class RawRate:
    """One bucket exactly as the exchange reports it."""

    time: datetime
    low: float
    high: float
    open: float
    close: float
    volume: float


@dataclass(frozen=True, slots=True)
class Candlestick:
    """Normalized OHLCV bucket tagged with its granularity.

    ``datetime`` is the canonical UTC string of ``timestamp``; both are derived
    from the exchange bucket time. Prices are passed through untouched.
    """

    timestamp: int
    datetime: str
    granularity: int
    low: float
    high: float
    open: float
    close: float
    volume: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "datetime": self.datetime,
            "granularity": self.granularity,
            "low": self.low,
            "high": self.high,
            "open": self.open,
            "close": self.close,
            "volume": self.volume,
            "timestamp": self.timestamp,
        }


def candle_from_rate(granularity: int, rate: RawRate) -> Candlestick:
    """Attach ``granularity`` to ``rate`` and derive the UTC time fields."""

    utc = ensure_utc(rate.time)
    return Candlestick(
        timestamp=int(to_unix_seconds(utc)),
        datetime=format_utc(utc),
        granularity=granularity,
        low=float(rate.low),
        high=float(rate.high),
        open=float(rate.open),
        close=float(rate.close),
        volume=float(rate.volume),
    )


def candles_from_rates(granularity: int, rates: Iterable[RawRate]) -> List[Candlestick]:
    """Convert rates preserving their order."""

    return [candle_from_rate(granularity, rate) for rate in rates]


def parse_candles_response(payload: Sequence[Sequence[Any]] | None) -> List[RawRate]:
    """Convert the ``/products/<id>/candles`` payload into ascending :class:`RawRate` objects."""

    if not payload:
        return []
    rates: List[RawRate] = []
    for raw in payload:
        # Coinbase returns [time, low, high, open, close, volume], newest first
        rates.append(
            RawRate(
                time=from_unix_seconds(int(raw[0])),
                low=float(raw[1]),
                high=float(raw[2]),
                open=float(raw[3]),
                close=float(raw[4]),
                volume=float(raw[5]),
            )
        )
    rates.sort(key=lambda rate: rate.time)
    return rates
