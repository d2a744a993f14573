"""Print each candlestick as one JSON object per line."""
from __future__ import annotations

import json
import sys
import threading
from typing import TextIO

from candle_extractor.data_feed.candles import Candlestick


class StdoutReceiver:
    name = "stdout"

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def collect(self, candle: Candlestick) -> None:
        line = json.dumps(candle.to_dict())
        with self._lock:
            self._stream.write(line + "\n")

    def close(self) -> None:
        with self._lock:
            self._stream.flush()
