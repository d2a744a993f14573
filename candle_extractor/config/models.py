"""Typed configuration models for the extractor.

The config subsystem relies on pydantic to validate the YAML file and CLI
overrides and to hand strongly-typed, immutable objects to the pipeline. No
module-level mutable settings exist; every component receives its slice of
:class:`AppConfig` through its constructor.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

from candle_extractor.core.time_utils import ensure_utc

DEFAULT_REST_ENDPOINT = "https://api.exchange.coinbase.com"
DEFAULT_MIN_REQUEST_INTERVAL_SEC = 0.4
DEFAULT_BUFFER_SIZE = 100


class CredentialsConfig(BaseModel):
    """Exchange API credentials. All optional: public candle data needs none."""

    key: Optional[str] = None
    secret: Optional[str] = None
    passphrase: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def complete(self) -> bool:
        return bool(self.key and self.secret and self.passphrase)


class ExchangeConfig(BaseModel):
    """REST endpoint and transport settings for the exchange client."""

    rest_endpoint: str = Field(DEFAULT_REST_ENDPOINT, min_length=8)
    timeout_sec: float = Field(10.0, gt=0)
    max_retries: PositiveInt = 3
    backoff_base_sec: float = Field(0.5, ge=0)


class ExtractionConfig(BaseModel):
    """One extraction job: product, global range, granularity and pacing.

    Naive datetimes are interpreted as UTC. The job is frozen so the extractor
    can rely on it for the whole run.
    """

    product: str = Field(..., min_length=3)
    start: datetime
    end: datetime
    granularity: PositiveInt = 86400
    buffer_size: PositiveInt = DEFAULT_BUFFER_SIZE
    min_request_interval_sec: float = Field(DEFAULT_MIN_REQUEST_INTERVAL_SEC, ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_range(self) -> "ExtractionConfig":
        if self.end <= self.start:
            raise ValueError("`end` must be after `start`")
        return self


class FileOutputConfig(BaseModel):
    """Target file of a file-based receiver (CSV / NDJSON / JSON array)."""

    path: Path


class ElasticsearchOutputConfig(BaseModel):
    """Index settings for the HTTP upsert receiver."""

    index: str = Field("candlestick", min_length=1)
    host: str = Field("localhost", min_length=1)
    port: int = Field(9200, ge=1, le=65535)
    secure: bool = False
    timeout_sec: float = Field(10.0, gt=0)

    @property
    def base_url(self) -> str:
        protocol = "https" if self.secure else "http"
        return f"{protocol}://{self.host}:{self.port}/{self.index}"


class OutputsConfig(BaseModel):
    """Which receivers to build. Stdout is used when nothing else is enabled."""

    stdout: bool = False
    csv: Optional[FileOutputConfig] = None
    ndjson: Optional[FileOutputConfig] = None
    json_array: Optional[FileOutputConfig] = Field(None, alias="json")
    elasticsearch: Optional[ElasticsearchOutputConfig] = None

    model_config = ConfigDict(populate_by_name=True)


class TelemetryConfig(BaseModel):
    """Logging and run-report switches."""

    log_level: str = Field("INFO")
    logs_dir: str = Field("data/logs")
    reports_dir: str = Field("data/reports")
    verbose: bool = False

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


class AppConfig(BaseModel):
    """Runtime config composed of exchange, job, outputs, telemetry and secrets."""

    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    extraction: ExtractionConfig
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
