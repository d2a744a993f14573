"""Exchange data-feed package.

Modules here talk to the exchange REST API and turn raw historic rates into the
immutable :class:`~candle_extractor.data_feed.candles.Candlestick` records
consumed by the pipeline.
"""

__all__: list[str] = []
