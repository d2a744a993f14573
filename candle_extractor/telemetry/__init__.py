"""Telemetry and logging subsystem package."""
from .events import ExtractionStats, TelemetryEvent
from .logging_setup import JsonFormatter, configure_logging
from .storage import TelemetryStorage, default_storage

__all__ = [
    "ExtractionStats",
    "JsonFormatter",
    "TelemetryEvent",
    "TelemetryStorage",
    "configure_logging",
    "default_storage",
]
