"""YAML loaders for the config subsystem.

Each helper consumes one YAML file, validates it via models.py and returns
typed objects. Credentials may additionally come from the environment
(``GDAX_API_KEY``, ``GDAX_API_SECRET``, ``GDAX_API_PASSPHRASE``), which take
precedence over values in files.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

import yaml
from pydantic import ValidationError

from candle_extractor.core.errors import ConfigurationError

from .models import AppConfig, CredentialsConfig

_DEFAULT_CONFIG_DIR = Path("config")

CREDENTIAL_ENV_VARS: Mapping[str, str] = {
    "key": "GDAX_API_KEY",
    "secret": "GDAX_API_SECRET",
    "passphrase": "GDAX_API_PASSPHRASE",
}


def _read_yaml(path: Path) -> Mapping:
    """Read a YAML file and return a mapping (empty dict if file is blank)."""

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"YAML root must be a mapping in {path}")
    return data


def credentials_from_env(
    base: CredentialsConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> CredentialsConfig:
    """Overlay credential environment variables on top of ``base``."""

    env = os.environ if environ is None else environ
    values: Dict[str, Any] = base.model_dump() if base else {}
    for field_name, var_name in CREDENTIAL_ENV_VARS.items():
        if env.get(var_name):
            values[field_name] = env[var_name]
    return CredentialsConfig.model_validate(values)


def load_credentials_config(path: Path | str = _DEFAULT_CONFIG_DIR / "secrets.yaml") -> CredentialsConfig:
    """Load secrets.yaml (``key``/``secret``/``passphrase``); missing file means no credentials."""

    target = Path(path)
    if not target.exists():
        return CredentialsConfig()
    data = _read_yaml(target)
    return CredentialsConfig.model_validate(data.get("exchange", data))


def build_app_config(
    data: Mapping[str, Any],
    *,
    defaults: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Validate ``data`` into an AppConfig.

    ``defaults`` fill keys missing from ``data``; ``overrides`` (CLI flags) win
    over both. Nested mappings are merged key by key.

    Validation errors are re-raised as :class:`ConfigurationError` so the CLI
    can report them without a traceback.
    """

    merged = _deep_merge(_deep_merge(dict(defaults or {}), data), overrides or {})
    try:
        config = AppConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
    credentials = credentials_from_env(config.credentials, environ)
    return config.model_copy(update={"credentials": credentials})


def load_app_config(
    path: Path | str = _DEFAULT_CONFIG_DIR / "extractor.yml",
    *,
    secrets_path: Path | str | None = None,
    defaults: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load extractor.yml, merge optional secrets and CLI overrides.

    This is the entry point used by ``candle_extractor.main``.
    """

    data: Dict[str, Any] = dict(_read_yaml(Path(path)))
    if secrets_path is not None:
        secrets = load_credentials_config(secrets_path)
        data["credentials"] = {**secrets.model_dump(exclude_none=True), **dict(data.get("credentials") or {})}
    return build_app_config(data, defaults=defaults, overrides=overrides, environ=environ)


def _deep_merge(base: MutableMapping[str, Any], extra: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in extra.items():
        current = base.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            base[key] = _deep_merge(dict(current), value)
        else:
            base[key] = value
    return base
