"""Helpers for timezone-aware datetimes and UNIX timestamps.

Every timestamp crossing the pipeline is UTC. These helpers are the single
place where datetimes are parsed, normalized and rendered.
"""
from __future__ import annotations

from datetime import datetime, timezone

from .types import UnixSeconds


def now_utc() -> datetime:
    """Return the current UTC datetime with tzinfo."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` converted to UTC; naive values are assumed to be UTC."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_unix_seconds(dt: datetime) -> UnixSeconds:
    """Convert an aware datetime to whole UNIX seconds."""

    if dt.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware before conversion")
    return UnixSeconds(int(dt.timestamp()))


def from_unix_seconds(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def format_utc(dt: datetime) -> str:
    """Render ``dt`` as canonical ISO-8601 UTC (``2021-01-01T00:00:00Z``)."""

    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 string (``Z`` or offset suffix) into an aware UTC datetime."""

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Time must be RFC3339 (e.g. 2017-01-01T00:00:00Z): found [{value}]") from exc
    return ensure_utc(parsed)
