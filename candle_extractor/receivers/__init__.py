"""Output receivers and the factory that builds them from ``OutputsConfig``."""
from __future__ import annotations

from typing import List

from candle_extractor.config.models import OutputsConfig

from .base import Receiver, receiver_name
from .elasticsearch import ElasticsearchReceiver
from .files import CSV_HEADER, CsvReceiver, JsonArrayReceiver, NdjsonReceiver
from .stdout import StdoutReceiver


def build_receivers(outputs: OutputsConfig) -> List[Receiver]:
    """Instantiate the configured receivers.

    Stdout is added when explicitly enabled or when no other output exists.
    If one receiver cannot be built, the ones already opened are closed
    before the error propagates.
    """

    receivers: List[Receiver] = []
    try:
        if outputs.csv is not None:
            receivers.append(CsvReceiver(outputs.csv.path))
        if outputs.ndjson is not None:
            receivers.append(NdjsonReceiver(outputs.ndjson.path))
        if outputs.json_array is not None:
            receivers.append(JsonArrayReceiver(outputs.json_array.path))
        if outputs.elasticsearch is not None:
            receivers.append(ElasticsearchReceiver(outputs.elasticsearch))
    except Exception:
        # release handles opened before the failing receiver
        for receiver in receivers:
            receiver.close()
        raise
    if outputs.stdout or not receivers:
        receivers.append(StdoutReceiver())
    return receivers


__all__ = [
    "CSV_HEADER",
    "CsvReceiver",
    "ElasticsearchReceiver",
    "JsonArrayReceiver",
    "NdjsonReceiver",
    "Receiver",
    "StdoutReceiver",
    "build_receivers",
    "receiver_name",
]
