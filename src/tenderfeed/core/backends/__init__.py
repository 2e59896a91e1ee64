"""Backend implementations for fetching pages."""

from .base import (
    Backend,
    BackendError,
    BlockedError,
    FetchError,
    FetchResult,
    ProtocolError,
    RateLimitError,
    RequestSpec,
    RetryableStatusError,
    SnapshotError,
)
from .http_backend import HttpBackend
from .playwright_backend import BrowserSnapshotter, SnapshotOptions, SnapshotProvider

__all__ = [
    # Base classes
    "Backend",
    "RequestSpec",
    "FetchResult",
    # Errors
    "BackendError",
    "FetchError",
    "RetryableStatusError",
    "RateLimitError",
    "BlockedError",
    "ProtocolError",
    "SnapshotError",
    # Backends
    "HttpBackend",
    "BrowserSnapshotter",
    "SnapshotOptions",
    "SnapshotProvider",
]
