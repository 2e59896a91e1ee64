"""
Loader for configs/app.yaml.

String values may reference the environment as ``${VAR}`` or
``${VAR:-default}``, which keeps portal credentials out of the file.
A few settings can also come straight from the environment when the
file leaves them unset.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig

DEFAULT_APP_CONFIG = Path("configs/app.yaml")

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<default>[^}]*))?\}")

# Environment variable -> (section, key), used when the file is silent
ENV_DEFAULTS = {
    "HTTP_VERIFY_SSL": ("http", "verify_ssl"),
    "TENDERFEED_DATABASE_URL": ("database", "url"),
    "TENDERFEED_LOG_LEVEL": ("logging", "level"),
}


class ConfigError(Exception):
    """Configuration could not be read, parsed or validated."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}", path=path, details=str(e)) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", path=path, details=str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping, not {type(data).__name__}", path=path)
    return data


def expand_env(value: Any) -> Any:
    """Substitute ``${VAR}`` references in every string of a YAML tree."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m["name"], m["default"] or ""), value)
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    return value


def apply_env_defaults(data: dict[str, Any]) -> dict[str, Any]:
    """Fill settings the file leaves unset from ``ENV_DEFAULTS``."""
    for variable, (section, key) in ENV_DEFAULTS.items():
        value = os.environ.get(variable)
        if value is None:
            continue
        block = data.get(section)
        if block is None:
            block = data[section] = {}
        if isinstance(block, dict):
            block.setdefault(key, value)
    return data


def load_app_config(path: Path | str | None = None, expand: bool = True) -> AppConfig:
    """Load and validate app.yaml.

    Args:
        path: Path to app.yaml (default: configs/app.yaml)
        expand: Substitute ``${VAR}`` references from the environment

    Returns:
        Validated AppConfig; a missing file yields the defaults

    Raises:
        ConfigError: If the file is unreadable, not YAML, or fails validation
    """
    path = DEFAULT_APP_CONFIG if path is None else Path(path)

    data = _read_mapping(path) if path.exists() else {}
    if expand:
        data = expand_env(data)
    data = apply_env_defaults(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid app configuration in {path}", path=path, details=str(e)) from e


def parse_param_pairs(pairs: list[str] | None) -> dict[str, str]:
    """Turn ``--param key=value`` items into a dict; values keep any ``=``.

    Raises:
        ConfigError: If an item has no ``=`` or an empty key
    """
    params: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Expected key=value, got: {pair!r}")
        params[key.strip()] = value.strip()
    return params
