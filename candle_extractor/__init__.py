"""Top-level package for the historical candlestick extractor.

Subpackages split the tool into configuration, core primitives, the exchange
data feed, the extraction pipeline (window planning, pacing, extractor and
collector), output receivers and telemetry. Each subpackage should remain
import-safe on its own.
"""

__all__: list[str] = []
