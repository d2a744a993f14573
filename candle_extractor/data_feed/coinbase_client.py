"""Coinbase Exchange (formerly GDAX) REST client for historic rates.

Only ``GET /products/<product_id>/candles`` is needed by the extractor. The
endpoint returns at most 300 buckets per call (the pipeline asks for 200) as
rows of ``[time, low, high, open, close, volume]``, newest first.

Notes
-----
* Retries use exponential backoff ``backoff_base * 2 ** attempt`` for transport
  errors, HTTP 429 and 5xx. Other non-2xx answers raise
  :class:`~candle_extractor.core.errors.ExchangeApiError` immediately.
* When full credentials are configured, requests carry the Exchange signing
  headers: ``CB-ACCESS-SIGN = base64(HMAC_SHA256(base64decode(secret),
  timestamp + method + request_path + body))``.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlencode

import httpx

from candle_extractor.config.models import CredentialsConfig, ExchangeConfig
from candle_extractor.core.enums import Granularity
from candle_extractor.core.errors import ExchangeApiError
from candle_extractor.core.time_utils import format_utc
from candle_extractor.pipeline.windows import TimeWindow

from .candles import RawRate, parse_candles_response

LOGGER = logging.getLogger(__name__)

USER_AGENT = "candle-extractor/1.0"
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class CoinbaseClient:
    """Synchronous client implementing the extractor's ``ExchangeClient`` protocol.

    Parameters
    ----------
    exchange_config:
        Endpoint, timeout and retry settings.
    credentials:
        Optional API key/secret/passphrase; public candles work without them.
    session:
        Optional pre-configured :class:`httpx.Client` (e.g. for tests).
    """

    def __init__(
        self,
        exchange_config: ExchangeConfig | None = None,
        credentials: CredentialsConfig | None = None,
        session: httpx.Client | None = None,
        *,
        sleep=time.sleep,
    ) -> None:
        config = exchange_config or ExchangeConfig()
        self._credentials = credentials if credentials and credentials.complete else None
        self._client = session or httpx.Client(
            base_url=config.rest_endpoint,
            timeout=config.timeout_sec,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )
        self._max_retries = config.max_retries
        self._backoff_base = config.backoff_base_sec
        self._sleep = sleep

    def close(self) -> None:
        """Close the underlying HTTP client."""

        self._client.close()

    def __enter__(self) -> "CoinbaseClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public market data
    # ------------------------------------------------------------------
    def get_historic_rates(
        self,
        product: str,
        window: TimeWindow,
        granularity: int,
    ) -> Sequence[RawRate]:
        """Return the buckets of ``window`` for ``product`` in ascending time order."""

        if not Granularity.is_supported(granularity):
            LOGGER.warning("Granularity %s is not one of the documented values", granularity)
        params = {
            "start": format_utc(window.start),
            "end": format_utc(window.end),
            "granularity": granularity,
        }
        payload = self._request("GET", f"/products/{product}/candles", params=params)
        if not isinstance(payload, list):
            raise ExchangeApiError(200, f"Unexpected candles payload: {payload!r}", payload)
        return parse_candles_response(payload)

    # ------------------------------------------------------------------
    # REST helpers
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Perform an HTTP request with retry/backoff and return decoded JSON."""

        query = urlencode(params or {})
        request_path = f"{path}?{query}" if query else path
        attempt = 0
        last_error: Exception | None = None
        while attempt < self._max_retries:
            try:
                headers = self._build_auth_headers(method, request_path) if self._credentials else {}
                response = self._client.request(method, path, params=params, headers=headers)
                if not response.is_success:
                    raise ExchangeApiError(response.status_code, _error_message(response), response.text)
                return response.json()
            except (httpx.HTTPError, ExchangeApiError) as exc:
                if isinstance(exc, ExchangeApiError) and exc.status_code not in _RETRYABLE_STATUS:
                    raise
                last_error = exc
                LOGGER.warning("Exchange %s %s failed (attempt %s/%s): %s", method, path, attempt + 1, self._max_retries, exc)
                attempt += 1
                if attempt < self._max_retries:
                    self._sleep(self._backoff_base * (2 ** (attempt - 1)))
        assert last_error is not None
        raise last_error

    def _build_auth_headers(self, method: str, request_path: str, body: str = "") -> Dict[str, str]:
        """Return Coinbase Exchange signing headers for a REST call."""

        assert self._credentials is not None
        timestamp = str(time.time())
        message = f"{timestamp}{method.upper()}{request_path}{body}"
        secret = base64.b64decode(self._credentials.secret or "")
        signature = hmac.new(secret, message.encode(), hashlib.sha256).digest()
        return {
            "CB-ACCESS-KEY": self._credentials.key or "",
            "CB-ACCESS-SIGN": base64.b64encode(signature).decode(),
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-PASSPHRASE": self._credentials.passphrase or "",
        }


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, Mapping) and "message" in payload:
        return str(payload["message"])
    return response.text


__all__: List[str] = ["CoinbaseClient", "USER_AGENT"]
