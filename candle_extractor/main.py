"""Command-line entry point: extract candles for one product and fan them out.

Usage::

    candle-extractor --product BTC-USD --start 2021-01-01T00:00:00Z \
        --end 2021-01-05T00:00:00Z --granularity 86400 --out-csv out.csv

Every flag may also come from a YAML file passed with ``--config``; flags win
over the file. API credentials are read from ``GDAX_API_KEY``,
``GDAX_API_SECRET`` and ``GDAX_API_PASSPHRASE`` when set.
"""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Sequence

from candle_extractor.config.loader import build_app_config, load_app_config, load_credentials_config
from candle_extractor.config.models import AppConfig
from candle_extractor.core.errors import ConfigurationError, CoreError, TelemetryError
from candle_extractor.core.time_utils import format_utc, now_utc, parse_rfc3339
from candle_extractor.data_feed.coinbase_client import CoinbaseClient
from candle_extractor.pipeline.collector import Collector
from candle_extractor.pipeline.extractor import Extractor
from candle_extractor.receivers import build_receivers, receiver_name
from candle_extractor.telemetry import configure_logging
from candle_extractor.telemetry.events import ExtractionStats, TelemetryEvent
from candle_extractor.telemetry.storage import TelemetryStorage

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130
DEFAULT_LOOKBACK = timedelta(days=7)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="candle-extractor",
        description="Extract historic candlestick data from Coinbase Exchange into one or more outputs",
    )
    parser.add_argument("--config", type=Path, help="YAML config file (CLI flags override it)")
    parser.add_argument("--secrets", type=Path, help="YAML file with exchange key/secret/passphrase")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Verbose (DEBUG) logging")

    job = parser.add_argument_group("extraction")
    job.add_argument("--product", help="Product ID to extract [BTC-USD, ETH-USD, LTC-USD]")
    job.add_argument("-S", "--start", type=parse_rfc3339, help="Start time as RFC3339 (default: end - 7 days)")
    job.add_argument("-E", "--end", type=parse_rfc3339, help="End time as RFC3339 (default: now)")
    job.add_argument("-G", "--granularity", type=int, help="Bucket width in seconds (default: 86400)")
    job.add_argument("-b", "--buffer-size", type=int, help="Candlesticks buffered between extraction and collection")
    job.add_argument("--min-interval", type=float, help="Minimum seconds between exchange requests (default: 0.4)")
    job.add_argument("--parallel-fanout", action="store_true", help="Deliver each record to all receivers concurrently")

    out = parser.add_argument_group("outputs")
    out.add_argument("--out-stdout", action="store_true", default=None, help="Write output to stdout (default if no other output)")
    out.add_argument("--out-csv", type=Path, metavar="FILE", help="Write output to a CSV file")
    out.add_argument("--out-ndjson", type=Path, metavar="FILE", help="Write output to a newline-delimited JSON file")
    out.add_argument("--out-json", type=Path, metavar="FILE", help="Write output to a JSON array file")
    out.add_argument("--out-es", action="store_true", default=None, help="Index output to elasticsearch")
    out.add_argument("--out-es-index", help="Elasticsearch index (default: candlestick)")
    out.add_argument("--out-es-host", help="Elasticsearch host (default: localhost)")
    out.add_argument("--out-es-port", type=int, help="Elasticsearch port (default: 9200)")
    out.add_argument("--out-es-secure", action="store_true", default=None, help="Use https for elasticsearch")

    tel = parser.add_argument_group("telemetry")
    tel.add_argument("--log-dir", help="Directory for rotated JSON logs")
    tel.add_argument("--report-dir", help="Directory for the run report")
    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed flags into a nested mapping of explicitly-set values."""

    extraction = {
        "product": args.product,
        "start": args.start,
        "end": args.end,
        "granularity": args.granularity,
        "buffer_size": args.buffer_size,
        "min_request_interval_sec": args.min_interval,
    }
    outputs: Dict[str, Any] = {"stdout": args.out_stdout}
    for key, path in (("csv", args.out_csv), ("ndjson", args.out_ndjson), ("json", args.out_json)):
        if path is not None:
            outputs[key] = {"path": path}
    es = {
        "index": args.out_es_index,
        "host": args.out_es_host,
        "port": args.out_es_port,
        "secure": args.out_es_secure,
    }
    es = {key: value for key, value in es.items() if value is not None}
    if args.out_es or es:
        outputs["elasticsearch"] = es
    telemetry = {
        "logs_dir": args.log_dir,
        "reports_dir": args.report_dir,
        "verbose": args.verbose,
    }
    overrides = {
        "extraction": extraction,
        "outputs": outputs,
        "telemetry": telemetry,
    }
    return {
        section: {key: value for key, value in values.items() if value is not None}
        for section, values in overrides.items()
    }


def _defaults() -> Dict[str, Any]:
    end = now_utc().replace(microsecond=0)
    return {"extraction": {"start": end - DEFAULT_LOOKBACK, "end": end, "granularity": 86400}}


def load_config(args: argparse.Namespace) -> AppConfig:
    overrides = _cli_overrides(args)
    defaults = _defaults()
    if args.config is not None:
        try:
            return load_app_config(args.config, secrets_path=args.secrets, defaults=defaults, overrides=overrides)
        except (FileNotFoundError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
    data: Dict[str, Any] = {}
    if args.secrets is not None:
        try:
            data["credentials"] = load_credentials_config(args.secrets).model_dump(exclude_none=True)
        except (FileNotFoundError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
    return build_app_config(data, defaults=defaults, overrides=overrides)


def run(config: AppConfig, *, logger: logging.Logger, parallel_fanout: bool = False) -> ExtractionStats:
    """Run one extraction end to end and return its stats.

    Partial failures (failed windows, failing receivers) are reported through
    the collector's error handler and reflected in the stats; they do not
    abort the run.
    """

    job = config.extraction
    receivers = build_receivers(config.outputs)
    client = CoinbaseClient(config.exchange, config.credentials)
    extractor = Extractor(client)
    previous_handlers = _install_stop_handlers(extractor, logger)
    try:
        try:
            extractor.start(job)
        except CoreError:
            for receiver in receivers:
                receiver.close()
            raise
        collector = Collector(extractor, receivers, parallel_fanout=parallel_fanout)
        collector.collect()
        extractor.join()
    finally:
        _restore_handlers(previous_handlers)
        client.close()
    return ExtractionStats.from_run(
        product=job.product,
        granularity=job.granularity,
        start_time=job.start,
        end_time=job.end,
        extractor_stats=extractor.stats,
        collector_stats=collector.stats,
        receivers=[receiver_name(receiver) for receiver in receivers],
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    telemetry = config.telemetry
    level = "DEBUG" if telemetry.verbose else telemetry.log_level
    logger = configure_logging(log_dir=Path(telemetry.logs_dir), level=level)
    if telemetry.verbose:
        _log_settings(config, logger)

    print("\nExtracting...\n", file=sys.stderr)
    started = time.perf_counter()
    try:
        stats = run(config, logger=logger, parallel_fanout=args.parallel_fanout)
    except CoreError as exc:
        logger.error("Extraction aborted: %s", exc)
        return EXIT_FAILURE
    storage = TelemetryStorage(
        logs_dir=Path(telemetry.logs_dir),
        reports_dir=Path(telemetry.reports_dir),
    )
    try:
        storage.append_event(
            TelemetryEvent(timestamp=now_utc(), event_type="extraction_finished", payload=stats.to_dict())
        )
        report_path = storage.write_run_report(stats)
    except TelemetryError as exc:
        logger.warning("Run report not written: %s", exc)
        report_path = None
    logger.info("Extraction summary", extra={**stats.to_dict(), "report": str(report_path) if report_path else None})
    if stats.cancelled:
        logger.warning(
            "Extraction interrupted",
            extra={"windows_requested": stats.windows_requested, "windows_planned": stats.windows_planned},
        )
        print("\n...Interrupted; output is incomplete", file=sys.stderr)
        return EXIT_INTERRUPTED
    elapsed = timedelta(seconds=time.perf_counter() - started)
    print(f"\n...Done in {elapsed}", file=sys.stderr)
    return EXIT_OK


def _log_settings(config: AppConfig, logger: logging.Logger) -> None:
    job = config.extraction
    outputs = config.outputs
    logger.debug(
        "Settings",
        extra={
            "product": job.product,
            "granularity": job.granularity,
            "start": format_utc(job.start),
            "end": format_utc(job.end),
            "buffer_size": job.buffer_size,
            "min_request_interval_sec": job.min_request_interval_sec,
            "authenticated": config.credentials.complete,
            "out_stdout": outputs.stdout,
            "out_csv": str(outputs.csv.path) if outputs.csv else None,
            "out_ndjson": str(outputs.ndjson.path) if outputs.ndjson else None,
            "out_json": str(outputs.json_array.path) if outputs.json_array else None,
            "out_es": outputs.elasticsearch.base_url if outputs.elasticsearch else None,
        },
    )


def _install_stop_handlers(extractor: Extractor, logger: logging.Logger) -> List[tuple[int, Any]]:
    def _request_stop(signum: int, _: object) -> None:
        logger.info("Received signal", extra={"signal": signum})
        extractor.stop()

    previous: List[tuple[int, Any]] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous.append((signum, signal.signal(signum, _request_stop)))
        except ValueError:  # pragma: no cover - not in the main thread
            continue
    return previous


def _restore_handlers(previous: List[tuple[int, Any]]) -> None:
    for signum, handler in previous:
        signal.signal(signum, handler)


if __name__ == "__main__":
    sys.exit(main())
