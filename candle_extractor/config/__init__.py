"""Configuration loading and validation package."""

from .loader import (
    build_app_config,
    credentials_from_env,
    load_app_config,
    load_credentials_config,
)
from .models import (
    AppConfig,
    CredentialsConfig,
    ElasticsearchOutputConfig,
    ExchangeConfig,
    ExtractionConfig,
    FileOutputConfig,
    OutputsConfig,
    TelemetryConfig,
)

__all__ = [
    "AppConfig",
    "CredentialsConfig",
    "ElasticsearchOutputConfig",
    "ExchangeConfig",
    "ExtractionConfig",
    "FileOutputConfig",
    "OutputsConfig",
    "TelemetryConfig",
    "build_app_config",
    "credentials_from_env",
    "load_app_config",
    "load_credentials_config",
]
