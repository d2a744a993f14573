"""Extraction-and-distribution pipeline.

``windows`` splits a range into request-sized windows, ``rate_limit`` paces
outbound requests, ``stream`` provides the bounded closable channel between
threads, ``extractor`` produces records and ``collector`` fans them out to
receivers.
"""

__all__: list[str] = []
