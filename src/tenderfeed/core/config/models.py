"""
Pydantic configuration models for TenderFeed.

These models provide type-safe configuration with validation for:
- Database and logging settings
- HTTP client defaults (timeouts, retries, TLS, user agent)
- Politeness and run limits
- Browser snapshot fallback
- Per-source enable flags and parameters
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class RunStatus(str, Enum):
    """Lifecycle states of a run ledger entry."""

    RUNNING = "running"
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"


# =============================================================================
# HTTP Configuration
# =============================================================================


class HttpConfig(BaseModel):
    """Defaults for every outbound request."""

    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request before giving up",
    )
    retry_wait_ms: int = Field(
        default=500,
        ge=0,
        description="Fixed wait between attempts in milliseconds",
    )
    verify_ssl: bool = Field(
        default=True,
        description="Verify TLS certificates",
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; OCN Tenders Bot/1.0)",
        description="User agent sent to every portal",
    )

    @field_validator("verify_ssl", mode="before")
    @classmethod
    def parse_env_bool(cls, v: Any) -> Any:
        """Accept the string forms produced by ${HTTP_VERIFY_SSL} expansion."""
        if isinstance(v, str):
            return v.strip().lower() not in ("0", "false", "no", "off")
        return v


# =============================================================================
# Politeness Configuration
# =============================================================================


class PolitenessConfig(BaseModel):
    """Rate limiting settings shared by all sources."""

    min_delay_ms: int = Field(
        default=0,
        ge=0,
        description="Minimum delay between requests to one host in milliseconds",
    )
    max_delay_ms: int = Field(
        default=0,
        ge=0,
        description="Maximum delay between requests to one host in milliseconds",
    )
    page_delay_scale: float = Field(
        default=1.0,
        ge=0.0,
        description="Multiplier applied to each source's own inter-page delay",
    )

    @field_validator("max_delay_ms")
    @classmethod
    def max_delay_gte_min(cls, v: int, info: Any) -> int:
        """Ensure max delay is at least min delay."""
        min_delay = info.data.get("min_delay_ms", 0)
        if v < min_delay:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        return v


# =============================================================================
# Run Configuration
# =============================================================================


class RunConfig(BaseModel):
    """Limits applied to every adapter run."""

    max_run_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Wall-clock budget for one adapter run (None = unlimited)",
    )


# =============================================================================
# Snapshot Configuration
# =============================================================================


class SnapshotConfig(BaseModel):
    """Browser fallback settings."""

    headless: bool = True
    timeout_ms: int = Field(default=60000, ge=1000)
    user_agent: str | None = None
    locale: str = "en-CA"
    user_data_dir: Path = Path("data/browser-profile")
    stealth: bool = True


# =============================================================================
# Source Configuration
# =============================================================================


class SourceSettingsConfig(BaseModel):
    """Seed values for one source's persisted settings."""

    enabled: bool = True
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return v or {}


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/tenderfeed.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/tenderfeed.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml. It is
    passed explicitly to the orchestrator rather than read globally.
    """

    data_dir: Path = Field(
        default=Path("data"),
        description="Data storage directory",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    politeness: PolitenessConfig = Field(default_factory=PolitenessConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)

    sources: dict[str, SourceSettingsConfig] = Field(
        default_factory=dict,
        description="Initial enable flags and parameters keyed by source key",
    )

    @field_validator("sources", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return v or {}

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
