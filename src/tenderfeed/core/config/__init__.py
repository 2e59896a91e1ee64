"""Configuration loading and validation."""

from .models import (
    AppConfig,
    DatabaseConfig,
    HttpConfig,
    LoggingConfig,
    PolitenessConfig,
    RunConfig,
    RunStatus,
    SnapshotConfig,
    SourceSettingsConfig,
)
from .loader import ConfigError, load_app_config, parse_param_pairs

__all__ = [
    # Enums
    "RunStatus",
    # Config models
    "AppConfig",
    "DatabaseConfig",
    "HttpConfig",
    "LoggingConfig",
    "PolitenessConfig",
    "RunConfig",
    "SnapshotConfig",
    "SourceSettingsConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "parse_param_pairs",
]
