"""Error hierarchy shared by the extractor subsystems.

The pipeline distinguishes recoverable failures (a single request window or a
single receiver failing) from usage errors that are raised synchronously to the
caller. Submodules should raise the most specific error available.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from candle_extractor.pipeline.windows import TimeWindow


class CoreError(Exception):
    """Base class for all custom exceptions in the application."""


class ConfigurationError(CoreError):
    """Raised when configuration files or CLI arguments are missing or invalid."""


class WindowPlanningError(CoreError):
    """Raised when a time range cannot be split into request windows."""


class ExchangeApiError(CoreError):
    """Raised when the exchange answers with a non-success status."""

    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        super().__init__(f"Exchange error {status_code}: {message}")
        self.status_code = status_code
        self.payload = payload


class WindowRequestError(CoreError):
    """A single window request failed; the run continues with the next window."""

    def __init__(self, product: str, window: "TimeWindow", cause: BaseException) -> None:
        super().__init__(f"Request error: [{product}] {window}: {cause}")
        self.product = product
        self.window = window
        self.cause = cause


class ReceiverError(CoreError):
    """A receiver failed to persist a record or to close cleanly."""

    def __init__(self, receiver: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"Receiver error [{receiver}]: {message}")
        self.receiver = receiver
        self.status_code = status_code


class ExtractorStateError(CoreError):
    """Raised on invalid extractor lifecycle transitions (e.g. double start)."""


class CollectorError(CoreError):
    """Raised when collection cannot begin (no receivers, already collecting)."""


class StreamClosedError(CoreError):
    """Raised when a value is pushed onto a stream that was already closed."""


class TelemetryError(CoreError):
    """Raised for run report persistence issues."""
