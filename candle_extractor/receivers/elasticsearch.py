"""Upsert each candlestick into an Elasticsearch-compatible index over HTTP.

The document type is the granularity and the id is the candle datetime, so
re-running an extraction over the same range updates documents in place
instead of duplicating them.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict

import httpx

from candle_extractor.config.models import ElasticsearchOutputConfig
from candle_extractor.core.errors import ReceiverError
from candle_extractor.data_feed.candles import Candlestick

LOGGER = logging.getLogger(__name__)


class ElasticsearchReceiver:
    name = "elasticsearch"

    def __init__(
        self,
        config: ElasticsearchOutputConfig,
        session: httpx.Client | None = None,
    ) -> None:
        self.base_url = config.base_url
        self._owns_client = session is None
        self._client = session or httpx.Client(timeout=config.timeout_sec)
        self._lock = threading.Lock()
        self._closed = False

    def upsert_url(self, candle: Candlestick) -> str:
        return f"{self.base_url}/{candle.granularity}/{candle.datetime}/_update"

    @staticmethod
    def upsert_body(candle: Candlestick) -> Dict[str, Any]:
        return {"doc": candle.to_dict(), "doc_as_upsert": True}

    def collect(self, candle: Candlestick) -> None:
        url = self.upsert_url(candle)
        with self._lock:
            try:
                response = self._client.post(url, json=self.upsert_body(candle))
            except httpx.HTTPError as exc:
                raise ReceiverError(self.name, f"POST {url} failed: {exc}") from exc
        if not response.is_success:
            raise ReceiverError(
                self.name,
                f"ERR: [{response.status_code}] {response.text}",
                status_code=response.status_code,
            )

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._owns_client:
                self._client.close()
